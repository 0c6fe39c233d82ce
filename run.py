"""Local development entry point for the helpdesk API.

Usage:
    python run.py

Production runs the factory under a WSGI server instead:
    gunicorn "helpdesk:create_app('production')"
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before the config classes read os.environ

from helpdesk import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5000)
