from .codec import JsonCodec  # noqa: F401
from .dispatcher import Dispatcher  # noqa: F401
from .controller import ReplyController  # noqa: F401
