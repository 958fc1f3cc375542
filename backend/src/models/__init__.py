from .models import ReplyBinding, Registry, Handler  # noqa: F401
