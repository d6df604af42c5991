"""Entry point for ``flask --app app run`` and WSGI servers."""

from src.clockin.clockin.main import create_app

app = create_app()


if __name__ == "__main__":
    app.run(debug=app.config["DEBUG"])
