"""Authentication seam used by the API routers."""

from .dependencies import get_current_user_id

__all__ = ['get_current_user_id']
