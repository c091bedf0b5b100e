"""Application entry point for the marina web UI."""

from marina.webapp import create_app

app = create_app()


if __name__ == "__main__":
    app.run(debug=True)
