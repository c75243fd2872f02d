"""Prompt templates and ``{{token}}`` substitution for content and design generation."""

from __future__ import annotations

import re
from collections.abc import Mapping

from templaito.models import CountryScrapeResult, MultiProductInfo, ProductInfo

TOKEN_RE = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")

# Resolved later by the ESP at send time, never here.
RESERVED_TOKENS = frozenset({"email_address", "unsubscribe"})

EMAIL_ADDRESS_TOKEN = "{{email_address}}"
UNSUBSCRIBE_TOKEN = "{{unsubscribe}}UNSUBSCRIBE{{/unsubscribe}}"

SINGLE_PRODUCT_TOKENS = (
    "product_name", "image_url", "product_link", "regular_price", "sale_price", "discount",
)
MULTI_PRODUCT_TOKENS = ("product_names", "product_links", "product_images", "product_prices")


def render_prompt(template: str, values: Mapping[str, str]) -> str:
    """Replace every ``{{token}}`` whose name is in ``values``.

    Unknown tokens and the reserved ESP tokens are left byte-identical.
    """
    def _sub(match: re.Match) -> str:
        name = match.group(1)
        if name in RESERVED_TOKENS or name not in values:
            return match.group(0)
        return str(values[name])

    return TOKEN_RE.sub(_sub, template)


def price_summary(product: ProductInfo) -> str:
    """e.g. ``"$20 (Sale: $15) (25%)"``."""
    text = product.regular_price
    if product.sale_price:
        text += f" (Sale: {product.sale_price})"
    if product.discount:
        text += f" ({product.discount})"
    return text


def single_product_tokens(product: ProductInfo, url: str) -> dict[str, str]:
    return {
        "product_name": product.title,
        "image_url": product.best_image_url,
        "product_link": url,
        "regular_price": product.regular_price,
        "sale_price": product.sale_price,
        "discount": product.discount,
    }


def multi_product_tokens(info: MultiProductInfo, urls: list[str]) -> dict[str, str]:
    """Comma-joined plural tokens, in product order."""
    return {
        "product_names": ", ".join(p.title for p in info.products),
        "product_links": ", ".join(urls),
        "product_images": ", ".join(p.best_image_url for p in info.products),
        "product_prices": ", ".join(price_summary(p) for p in info.products),
    }


def tokens_for(product: ProductInfo | MultiProductInfo, urls: list[str]) -> dict[str, str]:
    if isinstance(product, MultiProductInfo):
        return multi_product_tokens(product, urls)
    return single_product_tokens(product, urls[0] if urls else "")


def tokens_for_result(result: CountryScrapeResult) -> dict[str, str]:
    return tokens_for(result.payload, result.urls)


def _link_for(urls: list[str], index: int) -> str:
    if 0 <= index < len(urls):
        return urls[index]
    return urls[0] if urls else ""


def describe_products(product: ProductInfo | MultiProductInfo, urls: list[str]) -> str:
    """Plain-text product details block shared by both prompts."""
    if isinstance(product, ProductInfo):
        return PRODUCT_DETAILS.format(
            heading="Product",
            name=product.title,
            description=product.description,
            link=_link_for(urls, 0),
            image=product.best_image_url,
            regular_price=product.regular_price,
            sale_price=product.sale_price,
            discount=product.discount,
        )
    return "\n".join(
        PRODUCT_DETAILS.format(
            heading=f"Product {i + 1}",
            name=p.title,
            description=p.description,
            link=_link_for(urls, i),
            image=p.best_image_url,
            regular_price=p.regular_price,
            sale_price=p.sale_price,
            discount=p.discount,
        )
        for i, p in enumerate(product.products)
    )


PRODUCT_DETAILS = """{heading}:
- Name: {name}
- Description: {description}
- Link: {link}
- Image: {image}
- Regular Price: {regular_price}
- Sale Price: {sale_price}
- Discount: {discount}
"""

CONTENT_SYSTEM_PROMPT = """You are an expert email marketing copywriter. Write the email in {language} language. \
Create compelling email content for {product_scope} based on the template type and product information. \
Focus ONLY on the copywriting - subject line, headline, body text, preheader and call-to-action text. \
Do not include any HTML or styling."""

CONTENT_PROMPT = """{template_instructions}

{product_details}
Generate email content in {language} language.

Respond in JSON only:
{{
  "subject": "Email subject line",
  "headline": "Main headline",
  "bodyText": "Main body text/description",
  "ctaText": "Call to action button text",
  "preheader": "Email preheader text"
}}"""

EMAIL_REQUIREMENTS = """MANDATORY EMAIL REQUIREMENTS (MUST FOLLOW ALL):
1. Include the full HTML document structure (DOCTYPE, html, head, body)
2. Add the meta tags email clients need in the head
3. Use a table-based layout for maximum email client compatibility
4. Center all content in the email
5. Use inline CSS for all styling (no external stylesheets and no <style> blocks)
6. Set a max-width of 600px for the main content
7. Use web-safe fonts
8. Create a beautiful, modern and professional design
9. Give every image descriptive alt text
10. Use padding instead of margins for spacing
11. Every link must open in a new tab (target="_blank")
12. Include an unsubscribe footer with 8px font size: "This message was sent to {email_token}. \
If you no longer wish to receive such messages, unsubscribe here {unsubscribe_token}" \
- do NOT use an href attribute for it, use the exact format shown"""

DESIGN_PROMPT = """You are an expert HTML email developer. Create a {layout} email template.

CRITICAL INSTRUCTION: You must return ONLY pure HTML code. Do NOT wrap it in JSON. \
Do NOT use markdown code blocks. Do NOT include explanations.

Your response should start with: <!DOCTYPE html>
Your response should end with: </html>

{requirements}

TEMPLATE-SPECIFIC REQUIREMENTS:
Template Type: {template_name} - {template_description}

SPECIFIC DESIGN INSTRUCTIONS FROM TEMPLATE TYPE:
{template_instructions}

Template Requirements:
- {layout_requirement}
- Mobile responsive design
- Each product needs an image, title, description, pricing and a CTA button

Email Content to Use:
- Subject: {subject}
- Headline: {headline}
- Body: {body_text}
- CTA Text: {cta_text}
- Preheader: {preheader}

{product_details}
CRITICAL: For the unsubscribe link use EXACTLY this format: {unsubscribe_token}

REMEMBER: Return ONLY the HTML code. Start with <!DOCTYPE html> immediately."""
