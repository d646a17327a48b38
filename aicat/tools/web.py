"""
Web tools: web_search and fetch_url.

Search scrapes the HTML result pages of Baidu, Bing or Sogou; `auto` tries
them in that order and returns the first engine with results. Page fetches
extract the title and main text with BeautifulSoup.
"""

import re
from typing import Any, Callable, Dict, List, Tuple
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from aicat.models import ToolResult
from aicat.permissions import CallerContext
from aicat.tools.registry import ToolCategory, tool_schema
from aicat.utils import get_logger

logger = get_logger("AICat.WebTools")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
}

ENGINES = ("auto", "baidu", "bing", "sogou")
AUTO_ORDER = ("baidu", "bing", "sogou")

SNIPPET_LIMIT = 300
DEFAULT_FETCH_LENGTH = 3000

_NOISE_TAGS = ["script", "style", "nav", "header", "footer", "aside", "iframe", "noscript"]
_CONTENT_CLASS = re.compile(r"content|article|post|entry|text")


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _result(title_link, snippet_node) -> Dict[str, str]:
    snippet = _clean(snippet_node.get_text(" ")) if snippet_node else ""
    return {
        "title": _clean(title_link.get_text(" ")),
        "url": title_link.get("href", ""),
        "snippet": snippet[:SNIPPET_LIMIT],
    }


def _fallback_h3(soup: BeautifulSoup, count: int) -> List[Dict[str, str]]:
    results = []
    for link in soup.select("h3 a[href], h2 a[href]"):
        if len(results) >= count:
            break
        title = _clean(link.get_text(" "))
        if title:
            results.append({"title": title, "url": link["href"], "snippet": ""})
    return results


def parse_baidu(html: str, count: int) -> List[Dict[str, str]]:
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for block in soup.select("div.c-container"):
        if len(results) >= count:
            break
        link = block.select_one("h3 a[href]")
        if link is None or not _clean(link.get_text()):
            continue
        snippet = block.select_one(".c-abstract, [class*='content-right_'], .c-span-last")
        results.append(_result(link, snippet))
    return results or _fallback_h3(soup, count)


def parse_bing(html: str, count: int) -> List[Dict[str, str]]:
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for block in soup.select("li.b_algo"):
        if len(results) >= count:
            break
        link = block.select_one("h2 a[href]") or block.select_one("a[href^='http']")
        if link is None or not _clean(link.get_text()):
            continue
        snippet = block.select_one("p") or block.select_one(".b_caption")
        results.append(_result(link, snippet))
    return results or _fallback_h3(soup, count)


def parse_sogou(html: str, count: int) -> List[Dict[str, str]]:
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for block in soup.select("div.vrwrap, div.rb"):
        if len(results) >= count:
            break
        link = block.select_one("h3 a[href]") or block.select_one("a[href]")
        if link is None or not _clean(link.get_text()):
            continue
        snippet = block.select_one(".str_info, .space-txt, .ft")
        results.append(_result(link, snippet))
    return results or _fallback_h3(soup, count)


def extract_page(html: str, max_length: int = DEFAULT_FETCH_LENGTH) -> Tuple[str, str]:
    """Return (title, main text) truncated to ``max_length`` characters."""
    soup = BeautifulSoup(html, "html.parser")
    title = _clean(soup.title.get_text()) if soup.title else ""

    for tag in soup(_NOISE_TAGS):
        tag.decompose()

    main = (
        soup.find("article")
        or soup.find("main")
        or soup.find("div", class_=_CONTENT_CLASS)
        or soup.body
        or soup
    )
    content = _clean(main.get_text(" "))
    if len(content) > max_length:
        content = content[:max_length] + "..."
    return title, content


SEARCH_URLS: Dict[str, Tuple[str, Callable[[str, int], Dict[str, Any]]]] = {
    "baidu": ("https://www.baidu.com/s", lambda q, n: {"wd": q, "rn": min(n * 2, 20), "ie": "utf-8"}),
    "bing": ("https://www.bing.com/search", lambda q, n: {"q": q, "count": min(n * 2, 20), "setlang": "zh-CN"}),
    "sogou": ("https://www.sogou.com/web", lambda q, n: {"query": q, "num": min(n * 2, 20)}),
}

PARSERS = {"baidu": parse_baidu, "bing": parse_bing, "sogou": parse_sogou}


class WebTools:
    """Executor for web_search and fetch_url."""

    category = ToolCategory.WEB
    tools = [
        tool_schema(
            "web_search",
            "Search the internet for up-to-date information",
            {
                "query": {"type": "string", "description": "Search keywords"},
                "engine": {"type": "string", "enum": list(ENGINES), "description": "Search engine"},
                "count": {"type": "integer", "description": "Number of results"},
            },
            required=["query"],
        ),
        tool_schema(
            "fetch_url",
            "Fetch a web page and return its title and main text",
            {
                "url": {"type": "string", "description": "Page URL"},
                "max_length": {"type": "integer", "description": "Maximum characters returned"},
            },
            required=["url"],
        ),
    ]

    def __init__(self, timeout: float = 15.0):
        self.timeout = timeout

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolResult:
        if tool_name == "web_search":
            return await self.search(
                str(args.get("query") or ""),
                str(args.get("engine") or "auto"),
                int(args.get("count") or 5),
            )
        if tool_name == "fetch_url":
            return await self.fetch(
                str(args.get("url") or ""),
                int(args.get("max_length") or DEFAULT_FETCH_LENGTH),
            )
        return ToolResult.fail(f"Unknown tool: {tool_name}")

    async def _get(self, url: str, params: Dict[str, Any] = None) -> str:
        async with httpx.AsyncClient(
            timeout=self.timeout, follow_redirects=True, headers=DEFAULT_HEADERS
        ) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response.text

    async def search_engine(self, engine: str, query: str, count: int) -> ToolResult:
        url, build_params = SEARCH_URLS[engine]
        try:
            html = await self._get(url, build_params(query, count))
        except httpx.HTTPError as exc:
            logger.warning(f"{engine} search failed: {exc}")
            return ToolResult.fail(f"{engine} search failed: {exc}")
        results = PARSERS[engine](html, count)
        return ToolResult.ok(
            data={"engine": engine, "query": query, "results": results, "total": len(results)},
            count=len(results),
        )

    async def search(self, query: str, engine: str = "auto", count: int = 5) -> ToolResult:
        if not query.strip():
            return ToolResult.fail("query is required")
        count = max(1, min(count, 10))

        if engine in PARSERS:
            return await self.search_engine(engine, query, count)

        last = None
        for name in AUTO_ORDER:
            last = await self.search_engine(name, query, count)
            if last.success and last.count:
                return last
        return last

    async def fetch(self, url: str, max_length: int = DEFAULT_FETCH_LENGTH) -> ToolResult:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return ToolResult.fail(f"Unsupported URL: {url!r}")
        try:
            html = await self._get(url)
        except httpx.HTTPError as exc:
            logger.warning(f"fetch_url {url} failed: {exc}")
            return ToolResult.fail(f"Failed to fetch page: {exc}")

        title, content = extract_page(html, max(1, max_length))
        return ToolResult.ok(data={"url": url, "title": title, "content": content, "length": len(content)})
