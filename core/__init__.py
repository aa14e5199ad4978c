"""
Core shared utilities for the TaskActivity auth service.

- db: SQLite connection pool (DatabaseManager)
- errors: APIError hierarchy and Flask error handlers
- timestamps: UTC timestamps and the injectable Clock
- notifier: outbound mail (SMTP or log-only)
- scheduler: daily maintenance jobs (APScheduler)
"""
