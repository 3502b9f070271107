import json
import logging
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from counsel_chat.core.config import settings
from counsel_chat.utils.json_encoder import json_dumps


logger = logging.getLogger(__name__)


PROFILE_KEY = "counsel_chat:profile:{user_id}"


class RedisManager:
  """
  Кэш профилей поверх Redis
  Любая ошибка Redis логируется и проглатывается: источник правды - БД
  """

  def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0):
    self.redis = Redis(
      host=host,
      port=port,
      db=db,
      decode_responses=True,
      socket_connect_timeout=2,     # Недоступный Redis не должен тормозить запросы
    )
    logger.info(f"[init] Redis кэш {host}:{port}/{db}")


  async def connect(self) -> bool:
    """PING при старте приложения"""

    try:
      return bool(await self.redis.ping())
    except RedisError as e:
      logger.error(f"[connect] Redis не отвечает: {e}")
      return False


  async def close(self):
    await self.redis.aclose()
    logger.info("[close] Соединение с Redis закрыто")


  async def cache_user_profile(self, user_id: int, profile: dict, ttl: int = 60):
    """Кладем профиль на ttl секунд"""

    try:
      await self.redis.set(PROFILE_KEY.format(user_id=user_id), json_dumps(profile), ex=ttl)
    except RedisError as e:
      logger.warning(f"[cache_user_profile] Профиль {user_id} не закэширован: {e}")


  async def get_cached_user_profile(self, user_id: int) -> Optional[dict]:
    try:
      raw = await self.redis.get(PROFILE_KEY.format(user_id=user_id))
    except RedisError as e:
      logger.warning(f"[get_cached_user_profile] Кэш профиля {user_id} недоступен: {e}")
      return None

    if raw is None:
      return None

    logger.debug(f"[get_cached_user_profile] Профиль {user_id} из кэша")
    return json.loads(raw)


redis_manager = RedisManager(
  host=settings.REDIS_HOST,
  port=settings.REDIS_PORT,
  db=settings.REDIS_DB,
)
