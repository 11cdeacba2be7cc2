from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from mailsafe.config import settings

# SQLite connections are shared across FastAPI's worker threads
# SQLiteの接続はFastAPIのワーカースレッド間で共有される
_connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(settings.database_url, connect_args=_connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Conversion history models derive from this base
# 変換履歴のモデルはこのベースを継承する
Base = declarative_base()


def get_db():
    """Yield one session per request and always close it.
    リクエストごとにセッションを1つ渡し、必ずクローズする。
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
