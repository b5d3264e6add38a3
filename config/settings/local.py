from .base import *  # noqa

DEBUG = True
MODE = "DEV"
TELEMETRY_ENABLED = False
