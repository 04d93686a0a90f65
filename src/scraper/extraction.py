"""Извлечение текста и ссылок из сырого HTML.

Эвристика на регулярках, без второго запроса в браузер. Разметка может быть
невалидной. Кандидат основного контента берётся целиком с учётом вложенных
тегов того же имени; навигация и шумовые блоки обрезаются на первом
закрывающем теге. Интерфейс (extract_text / extract_links) не зависит от способа парсинга.
"""
import html as html_module
import re
from urllib.parse import urljoin

EXTRACTION_FAILED = "[Content extraction failed: page has too little readable text]"

MIN_TEXT_LENGTH = 50  # результат не длиннее → EXTRACTION_FAILED
MIN_MAIN_LENGTH = 200  # main/article-кандидат должен быть длиннее
MIN_NAV_LENGTH = 5  # контейнеры навигации короче считаются шумом

_FLAGS = re.IGNORECASE | re.DOTALL

_NAV_PATTERNS = [
    re.compile(r"<nav\b[^>]*>(.*?)</nav>", _FLAGS),
    re.compile(r"<header\b[^>]*>(.*?)</header>", _FLAGS),
    re.compile(
        r"<(div|ul|section)\b[^>]*\bclass\s*=\s*[\"'][^\"']*\b(?:nav\w*|menu\w*)\b[^\"']*[\"'][^>]*>(.*?)</\1>",
        _FLAGS,
    ),
]

# Только открывающий тег: конец контейнера ищет _element_inner с учётом вложенности
_MAIN_OPEN_PATTERNS = [
    re.compile(r"<(main)\b[^>]*>", re.IGNORECASE),
    re.compile(r"<(article)\b[^>]*>", re.IGNORECASE),
    re.compile(
        r"<(div|section)\b[^>]*\bclass\s*=\s*[\"'][^\"']*\b(?:content|post|article|entry)\b[^\"']*[\"'][^>]*>",
        re.IGNORECASE,
    ),
]

_BODY_RE = re.compile(r"<body\b[^>]*>(.*?)(?:</body>|$)", _FLAGS)
_JUNK_RE = re.compile(r"<(script|style|noscript)\b[^>]*>.*?</\1>", _FLAGS)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_LAYOUT_RE = re.compile(r"<(nav|header|footer|aside)\b[^>]*>.*?</\1>", _FLAGS)
_NOISE_RE = re.compile(
    r"<(div|section|aside|ul)\b[^>]*\bclass\s*=\s*[\"'][^\"']*\b(?:ads?|advert\w*|sidebar|cookie\w*|popup)\b[^\"']*[\"'][^>]*>.*?</\1>",
    _FLAGS,
)
_BLOCK_TAG_RE = re.compile(
    r"<(?:br|/?p|/?div|/?h[1-6]|/?li|/?tr|/?section|/?article|/?main|/?blockquote|/?pre|/?table|/?ul|/?ol)\b[^>]*>",
    re.IGNORECASE,
)
_TAG_RE = re.compile(r"<[^>]+>")
_INLINE_WS_RE = re.compile(r"[^\S\n]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
# Висящие разделители по краям строки; точку и закрывающие кавычки/скобки не трогаем
_EDGE_LEAD_RE = re.compile(r"^[\s|•·»«>*\-–—,;:/]+")
_EDGE_TRAIL_RE = re.compile(r"[\s|•·»«<*\-–—,;:/]+$")


def _strip_to_text(fragment: str) -> str:
    """Убрать теги, раскодировать entity, схлопнуть пробелы в одну строку."""
    text = _TAG_RE.sub(" ", fragment)
    text = html_module.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def extract_navigation(html: str) -> str:
    """Текст навигации: nav, header и контейнеры с классом nav/menu через ' | '."""
    cleaned = _COMMENT_RE.sub("", _JUNK_RE.sub("", html))
    parts: list[str] = []
    for pattern in _NAV_PATTERNS:
        for match in pattern.finditer(cleaned):
            text = _strip_to_text(match.group(match.lastindex or 1))
            if len(text) < MIN_NAV_LENGTH or text in parts:
                continue
            parts.append(text)
    return " | ".join(parts)


def _element_inner(html: str, tag: str, start: int) -> str:
    """Содержимое элемента от start до парного закрывающего tag.

    Вложенные теги с тем же именем учитываются; нет пары → до конца документа.
    """
    depth = 1
    for match in re.finditer(rf"<(/?){tag}\b[^>]*>", html[start:], re.IGNORECASE):
        depth += -1 if match.group(1) else 1
        if depth == 0:
            return html[start:start + match.start()]
    return html[start:]


def _pick_main_fragment(html: str) -> str:
    """main/article/content-контейнер длиннее MIN_MAIN_LENGTH, иначе весь body."""
    for pattern in _MAIN_OPEN_PATTERNS:
        for match in pattern.finditer(html):
            fragment = _element_inner(html, match.group(1), match.end())
            if len(_strip_to_text(fragment)) > MIN_MAIN_LENGTH:
                return fragment

    body = _BODY_RE.search(html)
    return body.group(1) if body else html


def _clean_block(fragment: str) -> str:
    """HTML-фрагмент → читаемый многострочный текст."""
    text = _JUNK_RE.sub("", fragment)
    text = _COMMENT_RE.sub("", text)
    text = _LAYOUT_RE.sub("", text)
    text = _NOISE_RE.sub("", text)
    text = _BLOCK_TAG_RE.sub("\n", text)
    text = _TAG_RE.sub(" ", text)
    text = html_module.unescape(text)

    lines: list[str] = []
    for line in text.split("\n"):
        line = _INLINE_WS_RE.sub(" ", line).strip()
        line = _EDGE_LEAD_RE.sub("", line)
        line = _EDGE_TRAIL_RE.sub("", line)
        lines.append(line)

    result = "\n".join(lines)
    result = _BLANK_LINES_RE.sub("\n\n", result)
    return result.strip()


def extract_main_text(html: str) -> str:
    """Основной контент страницы без навигации, рекламы и скриптов."""
    cleaned = _COMMENT_RE.sub("", _JUNK_RE.sub("", html))
    return _clean_block(_pick_main_fragment(cleaned))


def extract_text(html: str) -> str:
    """
    Полный текст для text_content.
    'NAVIGATION: <nav>\\n\\n<main>' если навигация найдена, иначе только main.
    Результат ≤ 50 символов → EXTRACTION_FAILED.
    """
    if not html:
        return EXTRACTION_FAILED

    navigation = extract_navigation(html)
    main_text = extract_main_text(html)

    if navigation:
        combined = f"NAVIGATION: {navigation}\n\n{main_text}".strip()
    else:
        combined = main_text

    if len(combined) <= MIN_TEXT_LENGTH:
        return EXTRACTION_FAILED
    return combined


def extract_links(html: str, base_url: str, extension: str = "pdf") -> list[str]:
    """Абсолютные URL из href, ссылающихся на .<extension>, без дублей."""
    pattern = re.compile(
        rf"href\s*=\s*[\"']([^\"']*\.{re.escape(extension)}[^\"']*)[\"']",
        re.IGNORECASE,
    )
    links: list[str] = []
    for match in pattern.finditer(html):
        href = html_module.unescape(match.group(1).strip())
        try:
            absolute = urljoin(base_url, href)
        except ValueError:
            continue  # битый URL (например, невалидный IPv6-хост)
        if absolute not in links:
            links.append(absolute)
    return links


def extract_pdf_links(html: str, base_url: str) -> list[str]:
    return extract_links(html, base_url, "pdf")
