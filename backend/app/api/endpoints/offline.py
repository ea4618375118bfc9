from fastapi import APIRouter
from app.core.config import settings
from app.schemas.offline import OfflineConfig
from app.schemas.response import StandardResponse
from app.services.cache_storage import CacheGeneration, GenerationKind

router = APIRouter()

@router.get("/config", response_model=StandardResponse[OfflineConfig])
def get_offline_config():
    """
    返回当前生效的离线缓存配置：缓存代名称、预缓存的外壳资源和课程缓存前缀。
    """
    static_cache = CacheGeneration(settings.STORAGE_NAMESPACE, GenerationKind.STATIC, settings.CACHE_VERSION)
    dynamic_cache = CacheGeneration(settings.STORAGE_NAMESPACE, GenerationKind.DYNAMIC, settings.CACHE_VERSION)
    config_data = OfflineConfig(
        version=settings.CACHE_VERSION,
        static_cache=static_cache.name,
        dynamic_cache=dynamic_cache.name,
        shell_resources=settings.SHELL_RESOURCES,
        course_cache_prefix=settings.COURSE_CACHE_PREFIX,
    )
    return StandardResponse(data=config_data)
