# Models package
from shipyard.models.project import Project
from shipyard.models.deployment import Deployment
from shipyard.models.port_assignment import PortAssignment
from shipyard.models.log_entry import LogEntry
