"""
Services module for the Validation Hub tile pipeline.
"""

from validation_hub.services.cache import get_cache
from validation_hub.services.ephemeral_cache import EphemeralCache
from validation_hub.services.provider_gateway import ProviderGateway
from validation_hub.services.redis_cache import RedisCache
