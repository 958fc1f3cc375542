from .constants import *  # noqa: F401,F403
from .utility_functions import blank, presence, to_json, log, describe_message  # noqa: F401
