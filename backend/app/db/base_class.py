from sqlalchemy.orm import declarative_base

# 所有 SQLAlchemy 模型的基类
Base = declarative_base()
