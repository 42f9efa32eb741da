"""
Supabase client factory for Workout Tracker
"""

from supabase import create_client, Client
from supabase.client import ClientOptions

from src.config import SUPABASE_SCHEMA, get_supabase_credentials


def get_supabase_client() -> Client:
    """Initialize and return Supabase client"""
    supabase_url, supabase_key = get_supabase_credentials()

    # Note: a schema other than 'public' must be exposed in the Supabase Dashboard:
    # Settings -> API -> Exposed schemas
    options = ClientOptions(schema=SUPABASE_SCHEMA)
    return create_client(supabase_url, supabase_key, options=options)
