"""
Configuration module for Workout Tracker
Reads environment variables (and an optional .env file)
"""

import logging
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Backend schema exposed through PostgREST
SUPABASE_SCHEMA = os.getenv("SUPABASE_SCHEMA", "public")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Fallbacks used when the settings table has no row yet
DEFAULT_REST_TIMER_DURATION = int(os.getenv("DEFAULT_REST_TIMER_DURATION", "90"))
DEFAULT_PLAY_SOUND = os.getenv("DEFAULT_PLAY_SOUND", "true").lower() in ("1", "true", "yes")

# Phrase the user has to type before a restore wipes the database
RESTORE_CONFIRMATION_PHRASE = "RESTORE"


def get_supabase_credentials():
    """Return (url, key) from the environment"""
    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_KEY")

    if not supabase_url or not supabase_key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

    return supabase_url, supabase_key


def configure_logging(level: str = None):
    """Set up root logging for the app"""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
