"""Built-in prompt templates and prompt lookup."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from templaito.errors import InvalidRequest
from templaito.models import DesignEngine, PromptStatus, TemplateKind, TemplateType
from templaito.orm import Prompt

logger = logging.getLogger(__name__)

_FOOTER = (
    "Footer in 8px text: \"This message was sent to {{email_address}}. If you no longer wish "
    "to receive such messages, unsubscribe here {{unsubscribe}}UNSUBSCRIBE{{/unsubscribe}}\""
)

DEFAULT_PROMPTS: list[dict] = [
    {
        "name": "Professional",
        "description": "Clean business layout with a clear call to action",
        "system_prompt": "You design restrained, professional marketing emails for established brands.",
        "user_prompt": f"""Design a professional email for {{{{product_name}}}}.

1. Bold title of at most 50 characters above the product image ({{{{image_url}}}})
2. One sentence of value-focused description, at most 80 characters
3. Three benefit lines, each with a business-appropriate emoji, a bold two or three word label and a short explanation
4. Navy CTA button, 300x50px, 16px text, linking to {{{{product_link}}}}
5. Price block: {{{{regular_price}}}}, sale price {{{{sale_price}}}}, discount {{{{discount}}}}
6. {_FOOTER}

Use blues and grays, tight padding and benefit text 2px larger than body text.""",
        "template_type": TemplateKind.SINGLE_PRODUCT,
    },
    {
        "name": "Promotional",
        "description": "Urgent, discount-led layout for limited offers",
        "system_prompt": "You design high-converting promotional emails that push an immediate purchase.",
        "user_prompt": f"""Design a promotional email for {{{{product_name}}}}.

1. Title with an urgency hook, at most 50 characters, at the very top
2. Product image ({{{{image_url}}}}) directly below the title
3. Savings-focused description of at most 80 characters
4. Show {{{{regular_price}}}} struck through next to {{{{sale_price}}}} and call out {{{{discount}}}} in a contrasting color
5. Three action-oriented benefit lines with emoji and bold labels
6. Large red CTA button, 350x50px, 18px uppercase text, linking to {{{{product_link}}}}
7. {_FOOTER}""",
        "template_type": TemplateKind.SINGLE_PRODUCT,
    },
    {
        "name": "Minimal",
        "description": "Whitespace-heavy layout centred on the product image",
        "system_prompt": "You design minimal, elegant emails where the product photo carries the message.",
        "user_prompt": f"""Design a minimal email for {{{{product_name}}}}.

1. Short, elegant title of at most 40 characters with generous whitespace
2. Large hero image: {{{{image_url}}}}
3. A description of at most 60 characters
4. Three understated benefit lines, one or two word labels, little or no emoji
5. Price: {{{{regular_price}}}} (sale {{{{sale_price}}}})
6. Subtle pastel CTA button, 250x40px, 14px text, linking to {{{{product_link}}}}
7. {_FOOTER}

Black, white and a single accent color only.""",
        "template_type": TemplateKind.SINGLE_PRODUCT,
    },
    {
        "name": "Bold & Colorful",
        "description": "Vibrant palette with strong visuals and a big CTA",
        "system_prompt": "You design energetic, colorful emails that stand out in a crowded inbox.",
        "user_prompt": f"""Design a bold, colorful email for {{{{product_name}}}}.

1. Title with a colored highlight, at most 50 characters
2. Product image ({{{{image_url}}}}) framed by a colored border or background
3. Energetic description of at most 80 characters
4. Three benefit lines with colorful emoji and catchy bold labels
5. Pricing: {{{{regular_price}}}}, now {{{{sale_price}}}}, save {{{{discount}}}}
6. Vibrant CTA button, 400x60px, 20px bold text, linking to {{{{product_link}}}}
7. {_FOOTER}""",
        "template_type": TemplateKind.SINGLE_PRODUCT,
    },
    {
        "name": "Modern & Sleek",
        "description": "Contemporary layout with dark accents and sharp typography",
        "system_prompt": "You design modern, sleek emails in the style of premium technology brands.",
        "user_prompt": f"""Design a modern, sleek email for {{{{product_name}}}}.

1. Crisp sans-serif title of at most 45 characters
2. Edge-to-edge product image: {{{{image_url}}}}
3. Description of at most 70 characters
4. Three benefit lines using simple line icons or monochrome emoji
5. Pricing row: {{{{regular_price}}}} / {{{{sale_price}}}} ({{{{discount}}}})
6. Dark CTA button with rounded corners, 320x50px, 16px text, linking to {{{{product_link}}}}
7. {_FOOTER}

Dark accents on a light background, consistent 8px spacing grid.""",
        "template_type": TemplateKind.SINGLE_PRODUCT,
    },
    {
        "name": "Multi-Product Landing",
        "description": "Landing-page style email showcasing several products",
        "system_prompt": "You design landing-page style emails that present a collection of products side by side.",
        "user_prompt": f"""Design a multi-product landing email featuring: {{{{product_names}}}}.

1. Collection headline and a one-line intro
2. One card per product, in this order, using these images: {{{{product_images}}}}
3. Each card shows the product name, a short description, its price ({{{{product_prices}}}}) and a CTA button
4. Card links, in the same order: {{{{product_links}}}}
5. Two cards per row on desktop, one per row on mobile
6. {_FOOTER}""",
        "template_type": TemplateKind.MULTI_PRODUCT,
    },
]


def seed_default_prompts(session: Session) -> int:
    """Insert the built-in prompts that are missing. Returns the number added."""
    existing = set(session.scalars(select(Prompt.name)))
    added = 0
    for entry in DEFAULT_PROMPTS:
        if entry["name"] in existing:
            continue
        session.add(Prompt(
            name=entry["name"],
            description=entry["description"],
            system_prompt=entry["system_prompt"],
            user_prompt=entry["user_prompt"],
            template_type=entry["template_type"].value,
            design_engine=DesignEngine.CLAUDE.value,
            status=PromptStatus.ACTIVE.value,
            is_default=True,
            version="1.0.0",
        ))
        added += 1
    session.commit()
    if added:
        logger.info("Seeded %d default prompts", added)
    return added


def list_active_prompts(session: Session, template_type: TemplateKind | str | None = None) -> list[TemplateType]:
    """ACTIVE prompts, defaults first, then by name."""
    stmt = select(Prompt).where(Prompt.status == PromptStatus.ACTIVE.value)
    if template_type is not None:
        try:
            kind = TemplateKind(template_type)
        except ValueError:
            raise InvalidRequest(f"Unknown template type: {template_type}") from None
        stmt = stmt.where(Prompt.template_type == kind.value)
    stmt = stmt.order_by(Prompt.is_default.desc(), Prompt.name)
    return [p.to_template_type() for p in session.scalars(stmt)]


def get_prompt(session: Session, prompt_id: int) -> TemplateType:
    """An ACTIVE prompt by id."""
    prompt = session.get(Prompt, prompt_id)
    if prompt is None or prompt.status != PromptStatus.ACTIVE.value:
        raise InvalidRequest(f"Prompt {prompt_id} not found or not active")
    return prompt.to_template_type()
