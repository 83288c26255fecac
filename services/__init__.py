"""
Services Package
Version: 2.0

IMPORTANT: Keep this file minimal to avoid circular imports.
Import services directly where needed.
"""

# DO NOT import services here to avoid circular imports
# Import services directly in the modules that need them:
#   from services.gateway_client import GatewayClient
#   from services.booking_workflow import BookingWorkflow
