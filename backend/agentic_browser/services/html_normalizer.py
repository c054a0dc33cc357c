"""
HTML 清洗：把页面 body 转成精简的 HTML 观察，减少发给模型的 token
"""
import re
from typing import Any, Union

from bs4 import BeautifulSoup, Comment

OBSERVATION_MARKER = "[HTML]:"

_DROPPED_TAGS = ["script", "style"]
_DROPPED_ATTRS = {"type", "language"}


def _remove_script_and_style_tags(soup: BeautifulSoup) -> None:
    for element in soup(_DROPPED_TAGS):
        element.decompose()


def _remove_comments(soup: BeautifulSoup) -> None:
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()


def _remove_attributes(soup: BeautifulSoup) -> None:
    """删除 on* 事件处理器以及 type / language 属性"""
    for tag in soup.find_all(True):
        for name in list(tag.attrs):
            lowered = name.lower()
            if lowered.startswith("on") or lowered in _DROPPED_ATTRS:
                del tag.attrs[name]


def _compress(html: str) -> str:
    html = re.sub(r"\n+", "", html)
    html = re.sub(r"\s{2,}", " ", html)
    html = re.sub(r">\s+<", "><", html)
    return html.strip()


def clean_html(raw_html: str) -> str:
    """解析 HTML，去掉脚本、样式、注释和无用属性，返回压缩后的 HTML。"""
    if not raw_html:
        return ""
    soup = BeautifulSoup(raw_html, "html.parser")
    _remove_script_and_style_tags(soup)
    _remove_comments(soup)
    _remove_attributes(soup)
    return _compress(str(soup))


def format_observation(raw_html: str) -> str:
    """清洗并加上观察标记，作为一条 observation 的内容。"""
    return f"{OBSERVATION_MARKER}\n{clean_html(raw_html)}"


async def observe(page: Union[Any, str]) -> str:
    """读取页面 body.innerHTML（或直接使用传入字符串）并生成观察文本。"""
    if isinstance(page, str):
        raw_html = page
    else:
        raw_html = await page.evaluate(
            """() => {
                const body = document.body;
                return body ? body.innerHTML : '';
            }"""
        )
    return format_observation(raw_html or "")
