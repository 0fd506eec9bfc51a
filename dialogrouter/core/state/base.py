from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


# --- Conversation persistence (ORM) ---
Base = declarative_base()


# --- Session maker ---
def _make_session_maker(db_url: str) -> sessionmaker:
    """
    Creates a new SQLAlchemy session maker and makes sure all tables exist.

    Args:
        db_url (str): The database URL.

    Returns:
        sessionmaker: The SQLAlchemy session maker.
    """
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    engine = create_engine(db_url, future=True, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
