from .schemas import Envelope, DispatcherSettings, BindingInfo, HealthResponse, ActionResponse  # noqa: F401
