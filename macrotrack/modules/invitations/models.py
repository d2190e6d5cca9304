# Supabase tables: invite_codes, invite_code_redemptions, user_profiles, user_roles, roles
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK / RPC in service.py

"""
Expected Supabase objects:

invite_codes:
- id: uuid (primary key)
- code: text (unique, not null)
- coach_email: text
- coach_name: text (nullable)
- max_uses: int (nullable)
- usage_count: int (default 0)
- expires_at: timestamp (nullable)

RPC functions (SECURITY DEFINER, so clients never read invite_codes directly):
- validate_invitation_code(input_code text)
    -> setof (code_id uuid, is_valid bool, coach_email text, coach_name text)
- increment_invitation_code_usage(input_code text) -> bool

user_profiles:
- id: uuid (primary key)
- user_id: uuid (references auth.users.id)
- user_email: text
- user_name: text
- user_role: text - "client" for invited users
- assignment_status: text - assigned | unassigned
- assigned_coach: text (nullable)
- coach_invite_code: text (nullable)
- coach_assignment_date, role_assigned_at: timestamp (nullable)
- role_assigned_by: text - "invitation_code_<code>" or "email_invitation"
- created_at, updated_at: timestamp

user_roles: (user_id, role_id) when the optional roles table exists,
otherwise (user_id, role text).
"""
