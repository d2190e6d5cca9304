"""
Table Names Configuration
This config defines the tables that exist in the macro tracker schema.
Used by the table validator and the records module to reject or correct
table names before a query reaches PostgREST ("relation does not exist").
"""

# Tables known to exist, grouped by area
TABLES = {
    "profiles": {
        "tables": ["user_profiles", "user_preferences", "user_roles"],
        "description": "User and profile tables"
    },
    "invitations": {
        "tables": ["invite_codes", "invite_code_redemptions"],
        "description": "Invitation and code tables"
    },
    "nutrition": {
        "tables": ["daily_meals", "daily_targets", "meal_plans", "custom_recipes"],
        "description": "Nutrition and meal tables"
    },
    "progress": {
        "tables": ["progress_entries", "progress_goals", "macro_history", "macro_calculations"],
        "description": "Progress and tracking tables"
    },
}

# Tables that may not exist in every deployment
OPTIONAL_TABLES = ["roles", "anonymous_profiles"]

# Common incorrect names and their replacements (None = no equivalent)
TABLE_CORRECTIONS = {
    "invitation_codes": "invite_codes",
    "users": "user_profiles",
    "coaching_sessions": None,
    "sessions": None,
}

# Tables whose rows carry user_id / anon_profile_id ownership columns
IDENTITY_SCOPED_TABLES = [
    "daily_meals",
    "daily_targets",
    "meal_plans",
    "custom_recipes",
    "progress_entries",
    "progress_goals",
    "macro_history",
    "macro_calculations",
    "user_preferences",
]

# Fields that may be used for ORDER BY
SORTABLE_FIELDS = [
    "created_at", "updated_at", "date", "user_email", "email",
    "user_name", "name", "title", "id", "calories", "weight"
]


def get_valid_tables():
    """
    Returns a flat, ordered list of every table name known to exist.
    """
    valid = []
    for group in TABLES.values():
        for table in group["tables"]:
            if table not in valid:
                valid.append(table)
    return valid


VALID_TABLES = get_valid_tables()
