"""
Auth catalog constants - no dependencies on other auth modules.

The permission catalog and the default role grants are centralized here for
easy auditing. Tunables (lifetimes, thresholds, policy) come from
config.settings and are passed into the services that need them.
"""

# =============================================================================
# Roles
# =============================================================================

ROLE_ADMIN = "ADMIN"
ROLE_USER = "USER"
ROLE_GUEST = "GUEST"
ROLE_EXPENSE_ADMIN = "EXPENSE_ADMIN"

# Roles with no password self-service and no lifecycle notifications
SELF_SERVICE_EXCLUDED_ROLES = frozenset({ROLE_GUEST})

DEFAULT_ROLES = {
    ROLE_ADMIN: "Full system administrator with all permissions",
    ROLE_USER: "Standard user with basic permissions",
    ROLE_GUEST: "Guest user with read-only access",
    ROLE_EXPENSE_ADMIN: "Administrator for expense-related features",
}

# =============================================================================
# Permission Catalog (resource, action, description)
# =============================================================================

DEFAULT_PERMISSIONS = [
    ("TASK_ACTIVITY", "CREATE", "Create new task activities"),
    ("TASK_ACTIVITY", "READ", "View task activities"),
    ("TASK_ACTIVITY", "UPDATE", "Modify existing task activities"),
    ("TASK_ACTIVITY", "DELETE", "Delete task activities"),
    ("TASK_ACTIVITY", "READ_ALL", "View all users task activities"),
    ("USER_MANAGEMENT", "CREATE", "Create new users"),
    ("USER_MANAGEMENT", "READ", "View user information"),
    ("USER_MANAGEMENT", "UPDATE", "Modify user information"),
    ("USER_MANAGEMENT", "DELETE", "Delete users"),
    ("USER_MANAGEMENT", "MANAGE_ROLES", "Assign roles and role permissions"),
    ("REPORTS", "VIEW", "Access reports"),
    ("REPORTS", "EXPORT", "Export reports to file"),
    ("EXPENSE", "CREATE", "Create new expenses"),
    ("EXPENSE", "READ", "View own expenses"),
    ("EXPENSE", "READ_ALL", "View all users expenses"),
    ("EXPENSE", "UPDATE", "Modify own expenses"),
    ("EXPENSE", "DELETE", "Delete own expenses"),
    ("EXPENSE", "SUBMIT", "Submit expenses for approval"),
    ("EXPENSE", "APPROVE", "Approve expense submissions"),
    ("EXPENSE", "REJECT", "Reject expense submissions"),
    ("EXPENSE", "MARK_REIMBURSED", "Mark expenses as reimbursed"),
    ("EXPENSE", "MANAGE_RECEIPTS", "Upload and manage receipt files"),
    ("JENKINS", "NOTIFY", "Send build notifications from the CI pipeline"),
    ("LOGIN_AUDIT", "READ_ALL", "View login audit entries for any user"),
    ("PASSWORD_LIFECYCLE", "RUN", "Trigger the password lifecycle scan"),
]

_TASK_OWN = [("TASK_ACTIVITY", a) for a in ("CREATE", "READ", "UPDATE", "DELETE")]
_EXPENSE_ALL = [(r, a) for r, a, _ in DEFAULT_PERMISSIONS if r == "EXPENSE"]

# Role -> granted (resource, action) pairs seeded on first initialization.
# ADMIN receives the entire catalog; there is no role-name bypass anywhere.
DEFAULT_ROLE_GRANTS = {
    ROLE_ADMIN: [(r, a) for r, a, _ in DEFAULT_PERMISSIONS],
    ROLE_USER: _TASK_OWN + [
        ("USER_MANAGEMENT", "READ"),
        ("USER_MANAGEMENT", "UPDATE"),
        ("REPORTS", "VIEW"),
        ("EXPENSE", "CREATE"),
        ("EXPENSE", "READ"),
        ("EXPENSE", "UPDATE"),
        ("EXPENSE", "DELETE"),
        ("EXPENSE", "SUBMIT"),
        ("EXPENSE", "MANAGE_RECEIPTS"),
    ],
    ROLE_GUEST: _TASK_OWN + [("REPORTS", "VIEW")],
    ROLE_EXPENSE_ADMIN: _EXPENSE_ALL + [
        ("TASK_ACTIVITY", "READ"),
        ("TASK_ACTIVITY", "READ_ALL"),
        ("REPORTS", "VIEW"),
        ("REPORTS", "EXPORT"),
    ],
}

# Permission that lets a caller read anybody's login audit
AUDIT_READ_ALL = ("LOGIN_AUDIT", "READ_ALL")
