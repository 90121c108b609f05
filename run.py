"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

    # seed default statuses and rebuild the view
    flask --app run.py seed-data
    flask --app run.py rebuild-view

"""

from portfolio_status import create_app

# WSGI application object. `flask run` looks for this `app` variable.
app = create_app()

if __name__ == "__main__":
    # For direct `python run.py` usage (dev only). Use a WSGI server in production.
    app.run(debug=True)
