from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """Holds the session shared by every repository taking part in a request."""

    def __init__(self, session: AsyncSession):
        self.session = session
