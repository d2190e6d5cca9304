"""macrotrack: identity resolution, invitation redemption and query hygiene
for the macro-tracking app's Supabase backend."""

__version__ = "0.1.0"
