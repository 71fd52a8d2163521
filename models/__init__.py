from .base import Base
from .user import User
from .car import Car
from .ownership_link import OwnershipLink
