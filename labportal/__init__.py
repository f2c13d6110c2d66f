"""
LabPortal: server-rendered patient management portal on a hosted Supabase backend.
"""
__version__ = "1.0.0"
