from enum import Enum

from bakery.errors import BakeryError, NotFound


class EditState(str, Enum):
    IDLE = "IDLE"
    EDITING = "EDITING"
    SAVING = "SAVING"
    SAVED = "SAVED"
    ERROR = "ERROR"


class StockCell:
    def __init__(self, product_id, name, server_value):
        self.product_id = product_id
        self.name = name
        self.server_value = server_value
        self.value = server_value
        self.state = EditState.IDLE
        self.error = None

    def __repr__(self):
        return f"<StockCell {self.product_id} {self.state.value} {self.value}>"


class StockEditor:
    """Admin grid of ledger values for one day.

    ``edit`` only changes the local value; nothing is written until
    ``commit`` (the blur or confirm of the cell). A commit whose value
    equals the last known server value sends nothing.
    """

    def __init__(self, client, day):
        self.client = client
        self.day = day
        self.cells = {}

    def load(self):
        self.cells = {
            row["product_id"]: StockCell(row["product_id"], row["name"], row["available_quantity"])
            for row in self.client.stock_sheet(self.day)
        }
        return list(self.cells.values())

    def cell(self, product_id):
        try:
            return self.cells[product_id]
        except KeyError:
            raise NotFound(f"Product {product_id} is not in the stock sheet.")

    def edit(self, product_id, value):
        cell = self.cell(product_id)
        cell.value = int(value)
        cell.error = None
        cell.state = EditState.IDLE if cell.value == cell.server_value else EditState.EDITING
        return cell

    def commit(self, product_id):
        cell = self.cell(product_id)
        if cell.value == cell.server_value:
            cell.state = EditState.IDLE
            cell.error = None
            return cell

        cell.state = EditState.SAVING
        try:
            entry = self.client.set_stock(product_id, self.day, cell.value)
        except BakeryError as e:
            # Value stays as typed so the admin can retry
            cell.state = EditState.ERROR
            cell.error = e.message
            return cell

        cell.server_value = entry["available_quantity"]
        cell.value = cell.server_value
        cell.state = EditState.SAVED
        cell.error = None
        return cell

    def commit_all(self):
        pending = [c for c in self.cells.values() if c.state in (EditState.EDITING, EditState.ERROR)]
        return [self.commit(cell.product_id) for cell in pending]

    def settle(self):
        """Return SAVED cells to IDLE once the success mark has been shown."""
        for cell in self.cells.values():
            if cell.state == EditState.SAVED:
                cell.state = EditState.IDLE
