from models.technician import Technician
from models.job import Job, JobEvent
from models.route_plan import RoutePlan, RouteStop

__all__ = [
    "Technician", "Job", "JobEvent",
    "RoutePlan", "RouteStop",
]
