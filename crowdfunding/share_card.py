"""
Shareable social cards for campaigns.

square: 1080x1080 feed post, story: 1080x1920 (9:16).
"""
import io
import logging
import re
from urllib.parse import urlparse

import requests
from django.conf import settings
from PIL import Image, ImageDraw, ImageFont, ImageOps

from .donations import summarize_campaign

logger = logging.getLogger(__name__)

FORMATS = {
    "square": {"size": (1080, 1080), "image_height": 540, "description_key": "description"},
    "story": {"size": (1080, 1920), "image_height": 1000, "description_key": "full_description"},
}

FALLBACK_START = "#8B2325"
FALLBACK_END = "#B91C1C"
ACCENT = "#B91C1C"
TEXT = "#111827"
MUTED = "#6B7280"
TRACK = "#E5E7EB"

CATEGORY_KEYWORDS = [
    (("cat", "kitten", "dog", "puppy"), "Animals"),
    (("education", "school", "study"), "Education"),
    (("medical", "health", "hospital"), "Medical"),
    (("emergency", "urgent"), "Emergency"),
    (("child", "family"), "Family"),
    (("food", "hunger"), "Food relief"),
    (("house", "shelter", "home"), "Shelter"),
]


def truncate_text(text, max_length=120):
    if not text or not isinstance(text, str):
        return ""
    cleaned = re.sub(r"\s+", " ", text.strip())
    if len(cleaned) <= max_length:
        return cleaned

    truncated = cleaned[:max_length]
    last_space = truncated.rfind(" ")
    # only back up to a word boundary when that doesn't lose too much
    if last_space > max_length * 0.7:
        return truncated[:last_space] + "..."
    return truncated + "..."


def card_data(campaign):
    info = summarize_campaign(campaign)
    raw_title = campaign.get("title") or campaign.get("name") or "Help Support This Campaign"
    raw_description = info["story"] or "Join us in making a positive impact in our community."

    raised = float(info["raised"] or 0)
    goal = float(info["goal"] or 100000)

    return {
        "title": truncate_text(raw_title, 80),
        "description": truncate_text(raw_description, 120),
        "full_description": truncate_text(raw_description, 200),
        "raised": raised,
        "goal": goal,
        "donors": int(info["donors"] or 0),
        "days_left": int(_first_present(campaign, "daysLeft", "remainingDays", default=30)),
        "image": info["image"],
        "category": info["category"] or "General",
        "progress": min(raised / goal * 100, 100) if goal > 0 else 0,
    }


def _first_present(data, *keys, default=None):
    for k in keys:
        if data.get(k) is not None:
            return data[k]
    return default


def category_label(title, description, category):
    content = f"{title} {description} {category}".lower()
    for words, label in CATEGORY_KEYWORDS:
        if any(w in content for w in words):
            return label
    return "Cause"


def _font(size):
    return ImageFont.load_default(size=size)


def wrap_lines(text, font, max_width, draw, max_lines=None):
    lines, current = [], ""
    for word in (text or "").split(" "):
        candidate = f"{current} {word}".strip()
        if current and draw.textlength(candidate, font=font) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)

    if max_lines and len(lines) > max_lines:
        lines = lines[:max_lines]
        lines[-1] = lines[-1].rstrip(".") + "..."
    return lines


def _gradient(size, start=FALLBACK_START, end=FALLBACK_END):
    base = Image.new("RGB", size, start)
    top = Image.new("RGB", size, end)
    mask = Image.linear_gradient("L").resize(size)
    return Image.composite(top, base, mask)


def _fallback_cover(size, data):
    cover = _gradient(size)
    draw = ImageDraw.Draw(cover)
    width, height = size

    label = category_label(data["title"], data["description"], data["category"])
    font = _font(width // 20)
    lines = wrap_lines(data["title"][:60], font, width * 0.8, draw)
    line_height = width // 15
    y = height / 2 - (len(lines) - 1) * line_height / 2
    for line in lines:
        draw.text((width / 2, y), line, font=font, fill="white", anchor="mm")
        y += line_height
    draw.text((width / 2, height - 60), label.upper(), font=_font(28), fill="white", anchor="mm")
    return cover


def fetch_cover_image(url):
    """
    Load a campaign cover through the backend image proxy.
    Only hosts the proxy serves are attempted; anything else uses the fallback.
    """
    if not url:
        return None
    host = urlparse(url).hostname or ""
    if host not in getattr(settings, "IMAGE_PROXY_HOSTS", []):
        return None

    try:
        resp = requests.get(settings.IMAGE_PROXY_URL, params={"url": url}, timeout=10)
        resp.raise_for_status()
        return Image.open(io.BytesIO(resp.content)).convert("RGB")
    except (requests.RequestException, OSError) as e:
        logger.info("Cover image unavailable for share card (%s): %s", url, e)
        return None


def render_card(campaign, fmt="square", image=None) -> bytes:
    layout = FORMATS.get(fmt) or FORMATS["square"]
    width, height = layout["size"]
    image_height = layout["image_height"]
    data = card_data(campaign)

    card = Image.new("RGB", (width, height), "white")
    cover_size = (width, image_height)
    if image is not None:
        cover = ImageOps.fit(image.convert("RGB"), cover_size)
    else:
        cover = _fallback_cover(cover_size, data)
    card.paste(cover, (0, 0))

    draw = ImageDraw.Draw(card)
    pad = 64

    # branding band
    draw.rectangle((0, 0, width, 90), fill=ACCENT)
    draw.text((pad, 45), getattr(settings, "APP_NAME", "NepalCrowdRise"), font=_font(40), fill="white", anchor="lm")

    if fmt == "story":
        badge = f"{data['days_left']} days left" if data["days_left"] > 0 else "URGENT"
        badge_font = _font(36)
        badge_w = draw.textlength(badge, font=badge_font) + 48
        draw.rounded_rectangle((width - pad - badge_w, 130, width - pad, 196), radius=33, fill="white")
        draw.text((width - pad - badge_w / 2, 163), badge, font=badge_font, fill=ACCENT, anchor="mm")

    y = image_height + 48
    title_font = _font(56 if fmt == "story" else 50)
    for line in wrap_lines(data["title"], title_font, width - 2 * pad, draw, max_lines=2):
        draw.text((pad, y), line, font=title_font, fill=TEXT)
        y += 66

    y += 16
    body_font = _font(34 if fmt == "story" else 30)
    body_lines = 5 if fmt == "story" else 2
    for line in wrap_lines(data[layout["description_key"]], body_font, width - 2 * pad, draw, max_lines=body_lines):
        draw.text((pad, y), line, font=body_font, fill=MUTED)
        y += 44

    # progress
    y = height - 250
    amount_font = _font(46)
    raised_txt = f"Rs. {data['raised'] / 1000:.0f}K"
    draw.text((pad, y), raised_txt, font=amount_font, fill=ACCENT)
    goal_x = pad + draw.textlength(raised_txt, font=amount_font) + 16
    draw.text((goal_x, y + 12), f"of Rs. {data['goal'] / 1000:.0f}K goal", font=_font(30), fill=MUTED)

    y += 76
    bar = (pad, y, width - pad, y + 24)
    draw.rounded_rectangle(bar, radius=12, fill=TRACK)
    filled = pad + (width - 2 * pad) * data["progress"] / 100
    if filled > pad:
        draw.rounded_rectangle((pad, y, max(filled, pad + 24), y + 24), radius=12, fill=ACCENT)

    y += 50
    small = _font(30)
    draw.text((pad, y), f"{data['donors']} donors", font=small, fill=TEXT)
    draw.text((width - pad, y), f"{data['progress']:.0f}% funded", font=small, fill=TEXT, anchor="ra")

    out = io.BytesIO()
    card.save(out, format="PNG", optimize=True)
    return out.getvalue()
