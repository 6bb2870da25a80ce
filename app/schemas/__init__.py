# Schemas package (re-export feature modules for stable imports)
from .appointments.appointment import *
from .doctors.availability import *
from .scheduler.sweep import *
