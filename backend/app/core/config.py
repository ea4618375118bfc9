from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    """
    应用程序配置设置类，从环境变量或.env文件加载所有配置项。
    使用Pydantic进行数据验证和类型检查。

    包含站点配置、进度存储命名空间、离线缓存版本、消息超时、数据库与Redis连接等配置项。
    """
    # Server
    BACKEND_PORT: int = 8000
    ORIGIN: str = "http://localhost:8000"

    # Model configuration tells Pydantic where to find the .env file.
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=True
    )

    PROJECT_NAME: str = "AdulTech Cursos"
    PROJECT_DESCRIPTION: str = "Plataforma educativa para enseñar tecnología básica a adultos mayores"
    API_V1_STR: str = "/api/v1"

    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # 进度存储：键格式为 "<namespace>-curso-<id>-progress"
    STORAGE_NAMESPACE: str = "adultech"

    # 离线缓存：静态与动态缓存代共用同一个版本号，重新部署时一起变更
    CACHE_VERSION: str = "v1"
    SHELL_RESOURCES: List[str] = [
        "/",
        "/cursos",
        "/preguntas",
        "/contacto",
        "/images/adultech-logo.png",
        "/placeholder.svg",
        "/manifest.json",
    ]
    OFFLINE_HOME_PATH: str = "/"
    OFFLINE_PLACEHOLDER_PATH: str = "/placeholder.svg"
    COURSE_CACHE_PREFIX: str = "/api/cursos/"

    # 页面与后台Worker之间一次请求/应答的最长等待时间（秒）
    MESSAGE_TIMEOUT_SECONDS: float = 5.0
    NETWORK_TIMEOUT_SECONDS: float = 10.0
    CONNECTIVITY_PROBE_URL: str = "https://www.google.com"

    DATABASE_URL: str = "sqlite:///./offline_cache.db"

    # Redis：跨进程（多标签页）的存储事件转发
    REDIS_URL: str = "redis://localhost:6379/0"
    ENABLE_REDIS_RELAY: bool = False

    # File paths
    STATIC_DIR: str = str(Path(__file__).resolve().parent.parent / "static")


# Create a single, globally accessible instance of the settings.
settings = Settings()
