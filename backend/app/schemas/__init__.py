from app.schemas.gateway_health import ChannelHealth, GatewayStatusPayload, HealthReport
from app.schemas.supervisor import InstanceHealthRead, SupervisorPolicyRead, SupervisorStatusRead

__all__ = [
    "ChannelHealth",
    "GatewayStatusPayload",
    "HealthReport",
    "InstanceHealthRead",
    "SupervisorPolicyRead",
    "SupervisorStatusRead",
]
