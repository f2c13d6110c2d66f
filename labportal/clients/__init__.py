"""
Clients for external services.
"""
from labportal.clients.supabase_client import SupabaseClient, TableQuery, extract_error_message

__all__ = ["SupabaseClient", "TableQuery", "extract_error_message"]
