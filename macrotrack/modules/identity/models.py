# Supabase table: anonymous_profiles (legacy guest identities)
# This file documents the expected database schema
# Actual operations are handled via the transports in transports.py

"""
Expected Supabase table structure:

anonymous_profiles:
- id: uuid (primary key, default gen_random_uuid())
- display_name: text (nullable) - "Guest User" when created by the app
- expires_at: timestamp (nullable) - absent in older deployments
- created_at: timestamp (default: now())

Identity-scoped tables (daily_meals, progress_entries, ...) carry:
- user_id: uuid (nullable, references auth.users.id)
- anon_profile_id: uuid (nullable, references anonymous_profiles.id)
- check constraint: exactly one of user_id / anon_profile_id is not null

Invite-only deployments drop anon_profile_id usage entirely; every new
record is owned by an authenticated user_id.
"""
