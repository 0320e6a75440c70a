from marshmallow import (
    EXCLUDE,
    Schema,
    fields,
    validate,
    validates,
    validates_schema,
    ValidationError,
)

from bakery.models import ProductCategory, ReservationStatus


class QuerySchema(Schema):
    class Meta:
        unknown = EXCLUDE


class ProfileRegisterSchema(Schema):
    email = fields.Email(required=True, validate=validate.Length(max=120))
    name = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    phone = fields.Str(
        required=False,
        allow_none=True,
        validate=validate.Regexp(
            r"^\+?\d{6,15}$",
            error="Invalid phone number. Digits only, optionally starting with +."
        )
    )
    password = fields.Str(required=True, load_only=True, validate=validate.Length(min=6))


class ProfileLoginSchema(Schema):
    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True)


class ProductSchema(Schema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=120))
    slug = fields.Str(required=False, validate=validate.Length(max=140))
    # When true the slug is derived from the name and any given slug is ignored
    auto_slug = fields.Bool(load_default=True)
    description = fields.Str(required=False, allow_none=True)
    price = fields.Decimal(required=True, places=2, validate=validate.Range(min=0))
    category = fields.Enum(ProductCategory, required=True)
    tags = fields.List(fields.Str(), load_default=list)
    active = fields.Bool(load_default=True)
    featured = fields.Bool(load_default=False)
    image_url = fields.Str(required=False, allow_none=True, validate=validate.Length(max=255))

    @validates_schema
    def validate_slug(self, data, **kwargs):
        if not data.get("auto_slug", True) and not (data.get("slug") or "").strip():
            raise ValidationError("Slug is required when auto_slug is off.", "slug")


class ProductUpdateSchema(Schema):
    name = fields.Str(validate=validate.Length(min=1, max=120))
    slug = fields.Str(validate=validate.Length(max=140))
    auto_slug = fields.Bool(load_default=False)
    description = fields.Str(allow_none=True)
    price = fields.Decimal(places=2, validate=validate.Range(min=0))
    category = fields.Enum(ProductCategory)
    tags = fields.List(fields.Str())
    active = fields.Bool()
    featured = fields.Bool()
    image_url = fields.Str(allow_none=True, validate=validate.Length(max=255))


class ProductQuerySchema(QuerySchema):
    category = fields.Enum(ProductCategory, required=False)
    q = fields.Str(required=False)
    featured = fields.Bool(required=False)
    # Admin listing only; public callers always see active products
    include_inactive = fields.Bool(load_default=False)


class DateQuerySchema(QuerySchema):
    """``?date=YYYY-MM-DD``; missing means today in the shop's time zone."""
    date = fields.Date(required=False)
    q = fields.Str(required=False)
    category = fields.Enum(ProductCategory, required=False)


class StockUpsertSchema(Schema):
    # Negative values are accepted here and clamped to 0 by the ledger
    quantity = fields.Int(required=True, strict=False)


class ReservationLineSchema(Schema):
    product_id = fields.Int(required=True)
    quantity = fields.Int(required=True, validate=validate.Range(min=1))


class ReservationSubmitSchema(Schema):
    pickup_date = fields.Date(required=True)
    pickup_timeslot = fields.Str(required=False, allow_none=True,
                                 validate=validate.Length(min=1, max=20))
    notes = fields.Str(required=False, allow_none=True, validate=validate.Length(max=1000))
    code = fields.Str(required=False, allow_none=True,
                      validate=validate.Regexp(r"^[A-Za-z0-9-]{4,20}$",
                                               error="Codes are 4-20 letters, digits or dashes."))
    items = fields.List(fields.Nested(ReservationLineSchema), required=True,
                        validate=validate.Length(min=1))


class ScopeQuerySchema(QuerySchema):
    scope = fields.Str(load_default="active",
                       validate=validate.OneOf(["active", "history", "all"]))


class AdminReservationQuerySchema(QuerySchema):
    status = fields.Enum(ReservationStatus, required=False)
    scope = fields.Str(required=False, validate=validate.OneOf(["active", "history", "all"]))
    date_from = fields.Date(required=False, data_key="from")
    date_to = fields.Date(required=False, data_key="to")
    q = fields.Str(required=False)

    @validates_schema
    def validate_range(self, data, **kwargs):
        if data.get("date_from") and data.get("date_to") and data["date_from"] > data["date_to"]:
            raise ValidationError("'from' must not be after 'to'.", "from")


class StatusChangeSchema(Schema):
    status = fields.Enum(ReservationStatus, required=True)

    @validates("status")
    def validate_status(self, value, **kwargs):
        if value in (ReservationStatus.PENDING, ReservationStatus.CANCELLED):
            raise ValidationError("Staff can only mark reservations PREPARED or PICKED_UP.")
