"""Pydantic models for lighttools-worker API requests and responses."""

from models.base import *
from models.ray_paths import *
from models.interrogation import *
