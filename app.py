import os

from bakery import create_app
from config import config

app = create_app(config[os.getenv("FLASK_CONFIG", "default")])


if __name__ == '__main__':
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5000)), debug=False)
