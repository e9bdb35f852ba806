"""
Bot Signature Constants

Known crawler user-agent fragments, the display name reported for each,
and the category buckets used in bot analytics.
"""

import re
from enum import Enum


class BotCategory(str, Enum):
    SEARCH_ENGINE = "Search Engine"
    SOCIAL_MEDIA = "Social Media"
    AI_ASSISTANT = "AI Assistant"
    SEO_TOOL = "SEO Tool"
    MONITORING_TOOL = "Monitoring Tool"
    OTHER = "Other Bot"


# (user-agent fragment, display name). Order matters: the first match wins,
# so specific variants precede their generic family.
BOT_SIGNATURES: tuple[tuple[str, str], ...] = (
    ("Googlebot-Image", "Googlebot-Image"),
    ("Googlebot-News", "Googlebot-News"),
    ("Googlebot-Video", "Googlebot-Video"),
    ("Googlebot", "Googlebot"),
    ("Bingbot", "Bingbot"),
    ("Slurp", "Yahoo! Slurp"),
    ("DuckDuckBot", "DuckDuckBot"),
    ("Baiduspider", "Baiduspider"),
    ("YandexBot", "YandexBot"),
    ("Sogou", "Sogou"),
    ("Exabot", "Exabot"),
    ("facebot", "Facebook External Hit"),
    ("facebookexternalhit", "Facebook External Hit"),
    ("Twitterbot", "Twitterbot"),
    ("rogerbot", "Rogerbot"),
    ("LinkedInBot", "LinkedInBot"),
    ("Embedly", "Embedly"),
    ("Quora Link Preview", "Quora Link Preview"),
    ("outbrain", "Outbrain"),
    ("Pinterest", "Pinterest"),
    ("Slackbot", "Slackbot"),
    ("TelegramBot", "TelegramBot"),
    ("Discordbot", "Discordbot"),
    ("WhatsApp", "WhatsApp"),
    ("Redditbot", "Redditbot"),
    ("Applebot", "Applebot"),
    ("SemrushBot", "SemrushBot"),
    ("AhrefsBot", "AhrefsBot"),
    ("MJ12bot", "MJ12bot"),
    ("DotBot", "DotBot"),
    ("Seekport", "Seekport"),
    ("CCBot", "Common Crawl Bot"),
    ("GPTBot", "OpenAI GPTBot"),
    ("ChatGPT-User", "OpenAI ChatGPT"),
    ("ClaudeBot", "Anthropic ClaudeBot"),
)

GENERIC_BOT_PATTERN = re.compile(r"\b(bot|crawler|spider|scraper|checker|fetcher|monitor)\b", re.IGNORECASE)

# Display name -> category; names missing here fall back to OTHER
BOT_CATEGORIES: dict[str, BotCategory] = {
    **dict.fromkeys(
        (
            "Googlebot",
            "Googlebot-Image",
            "Googlebot-News",
            "Googlebot-Video",
            "Bingbot",
            "Yahoo! Slurp",
            "DuckDuckBot",
            "Baiduspider",
            "YandexBot",
            "Sogou",
        ),
        BotCategory.SEARCH_ENGINE,
    ),
    **dict.fromkeys(
        (
            "Facebook External Hit",
            "Twitterbot",
            "LinkedInBot",
            "Pinterest",
            "Slackbot",
            "TelegramBot",
            "Discordbot",
            "WhatsApp",
            "Redditbot",
        ),
        BotCategory.SOCIAL_MEDIA,
    ),
    **dict.fromkeys(("OpenAI GPTBot", "OpenAI ChatGPT", "Anthropic ClaudeBot"), BotCategory.AI_ASSISTANT),
    **dict.fromkeys(
        ("SemrushBot", "AhrefsBot", "MJ12bot", "DotBot", "Seekport", "Rogerbot"),
        BotCategory.SEO_TOOL,
    ),
    **dict.fromkeys(("Common Crawl Bot", "Exabot", "Embedly", "Monitor", "Checker"), BotCategory.MONITORING_TOOL),
}
