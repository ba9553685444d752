from app.api.endpoints.user.profile import router

__all__ = ["router"]
