from .dashboard import (
    DashboardPayload,
    DashboardRequest,
    Profile,
    SamplingParameters,
    SessionSnapshot,
)
