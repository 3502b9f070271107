import enum
import json
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable


class FrameJSONEncoder(json.JSONEncoder):
  """
  Кадры WebSocket и кэш: даты в ISO, Enum по значению,
  pydantic и ORM объекты - словарем колонок
  """

  def default(self, obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
      return obj.isoformat()

    if isinstance(obj, enum.Enum):
      return obj.value

    if isinstance(obj, BaseModel):
      return obj.model_dump(mode="json")

    # ORM объект: только колонки, связи не трогаем (ленивая загрузка в async недоступна)
    try:
      mapper = inspect(obj).mapper
    except NoInspectionAvailable:
      return super().default(obj)

    return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}


def json_dumps(data: Any, **kwargs) -> str:
  kwargs.setdefault("cls", FrameJSONEncoder)
  kwargs.setdefault("ensure_ascii", False)
  kwargs.setdefault("separators", (",", ":"))
  return json.dumps(data, **kwargs)
