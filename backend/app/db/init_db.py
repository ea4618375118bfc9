#!/usr/bin/env python3
"""
数据库初始化脚本

这个脚本用于创建离线缓存使用的所有数据库表。
"""

import logging
import os

# 确保在导入任何其他模块之前加载环境变量
from dotenv import load_dotenv

project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
env_path = os.path.join(project_root, '.env')
if os.path.exists(env_path):
    load_dotenv(env_path)

from sqlalchemy.engine import Engine

from app.db.base_class import Base
from app.db.database import engine as default_engine
# 导入所有模型，确保它们被正确注册
from app.models.offline_cache import CacheBucket, CacheEntry  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(engine: Engine = default_engine) -> None:
    """初始化数据库，创建所有表"""
    logger.info(f"初始化数据库: {engine.url}")
    Base.metadata.create_all(bind=engine)
    logger.info("数据库表创建成功！")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
