"""
TaskActivity authentication service (Flask).

Use portal.app.create_app() to build the application.
"""
