"""
截图服务：每轮调用模型前把当前页面截图写入 MinIO，仅供排查，循环本身不读取
"""
import asyncio
import logging
from datetime import datetime, timezone
from io import BytesIO
from typing import Any, Optional
from urllib.parse import urlparse

from minio import Minio

from agentic_browser.core.config import settings

logger = logging.getLogger(__name__)


def bucket_timestamp(ts: datetime, minutes: int = 5) -> datetime:
    """把时间四舍五入到 N 分钟"""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    step = minutes * 60
    epoch = ts.timestamp()
    rounded = round(epoch / step) * step
    return datetime.fromtimestamp(rounded, tz=timezone.utc)


def screenshot_folder(created_at: datetime, starting_url: str, minutes: Optional[int] = None) -> str:
    """截图目录：<按 5 分钟取整的时间>_<起始页域名>"""
    bucketed = bucket_timestamp(created_at, minutes or settings.SCREENSHOT_BUCKET_MINUTES)
    parsed = urlparse(starting_url)
    host = parsed.netloc or parsed.path.split("/")[0] or "unknown"
    return f"{bucketed.strftime('%Y%m%dT%H%M')}_{host}"


def screenshot_key(folder: str, taken_at: Optional[datetime] = None) -> str:
    ts = (taken_at or datetime.now(timezone.utc)).astimezone(timezone.utc)
    iso = ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"{folder}/screenshot_{iso}.jpg"


class ScreenshotStore:
    """MinIO 截图存储"""

    def __init__(self, client: Optional[Minio] = None, bucket: Optional[str] = None):
        self.bucket = bucket or settings.SCREENSHOT_BUCKET
        self.minio_client = client or Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
        )
        self._bucket_checked = False

    def _ensure_bucket(self) -> None:
        if self._bucket_checked:
            return
        if not self.minio_client.bucket_exists(self.bucket):
            self.minio_client.make_bucket(self.bucket)
        self._bucket_checked = True

    def _put(self, key: str, content: bytes) -> None:
        self._ensure_bucket()
        self.minio_client.put_object(
            self.bucket,
            key,
            BytesIO(content),
            length=len(content),
            content_type="image/jpeg",
        )

    async def store(self, page: Any, folder: str) -> Optional[str]:
        """截图并上传，返回对象 key；失败只记日志返回 None，不影响任务。"""
        key = screenshot_key(folder)
        try:
            content = await page.screenshot(type="jpeg")
        except Exception as e:
            logger.warning("截图失败 key=%s: %s", key, e)
            return None
        try:
            await asyncio.to_thread(self._put, key, content)
        except Exception as e:
            logger.warning("截图上传失败 key=%s: %s", key, e)
            return None
        return key
