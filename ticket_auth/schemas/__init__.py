# Schemas package (re-export feature modules for stable imports)
from .auth.auth import *
