from supabase import create_client, Client, ClientOptions
from opsportal.config.settings import settings


class SupabaseClient:
    _client: Client = None
    _service_client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Client with service_role key; bypasses RLS. Used by the claiming process and admin writes."""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = create_client(
                settings.supabase_url, settings.supabase_service_role_key
            )
        return cls._service_client or cls.get_client()

    @classmethod
    def create_auth_client(cls, storage=None) -> Client:
        """Fresh, unshared client for one sign-in or callback. Its session state must not leak across requests."""
        options = {"flow_type": "pkce", "auto_refresh_token": False, "persist_session": False}
        if storage is not None:
            options["storage"] = storage
        return create_client(settings.supabase_url, settings.supabase_key, options=ClientOptions(**options))

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._service_client = None


def get_supabase() -> Client:
    return SupabaseClient.get_service_client()
