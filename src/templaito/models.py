"""Domain dataclasses passed between pipeline stages.

Wire helpers (``to_dict``/``from_dict``) use the camelCase keys the web UI
sends and expects.
"""

from __future__ import annotations

import copy
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum


class DesignEngine(str, Enum):
    CLAUDE = "CLAUDE"
    GPT4O = "GPT4O"


class TemplateKind(str, Enum):
    SINGLE_PRODUCT = "SINGLE_PRODUCT"
    MULTI_PRODUCT = "MULTI_PRODUCT"


class PromptStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class ScrapeKind(str, Enum):
    SINGLE = "SINGLE"
    MULTI = "MULTI"


class IntegrationProvider(str, Enum):
    SQUALOMAIL = "SQUALOMAIL"


class IntegrationStatus(str, Enum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


class CampaignStatus(str, Enum):
    DRAFT = "DRAFT"
    READY = "READY"
    SCHEDULED = "SCHEDULED"
    SENDING = "SENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


@dataclass
class TemplateType:
    """A prompt template selected by the user for one generation run."""

    name: str
    description: str = ""
    system_prompt: str = ""
    user_prompt: str = ""
    design_engine: DesignEngine = DesignEngine.CLAUDE
    template_type: TemplateKind = TemplateKind.SINGLE_PRODUCT
    status: PromptStatus = PromptStatus.ACTIVE
    is_default: bool = False
    version: str = "1.0.0"
    id: int | None = None

    def __post_init__(self):
        self.design_engine = DesignEngine(self.design_engine)
        self.template_type = TemplateKind(self.template_type)
        self.status = PromptStatus(self.status)

    @property
    def is_multi_product(self) -> bool:
        return self.template_type == TemplateKind.MULTI_PRODUCT

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "systemPrompt": self.system_prompt,
            "userPrompt": self.user_prompt,
            "designEngine": self.design_engine.value,
            "templateType": self.template_type.value,
            "status": self.status.value,
            "isDefault": self.is_default,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TemplateType:
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            description=data.get("description", ""),
            system_prompt=data.get("systemPrompt", data.get("system", "")),
            user_prompt=data.get("userPrompt", data.get("user", "")),
            design_engine=data.get("designEngine") or DesignEngine.CLAUDE,
            template_type=data.get("templateType") or TemplateKind.SINGLE_PRODUCT,
            status=data.get("status") or PromptStatus.ACTIVE,
            is_default=bool(data.get("isDefault", False)),
            version=data.get("version", "1.0.0"),
        )


@dataclass
class ProductInfo:
    title: str
    description: str = ""
    images: list[str] = field(default_factory=list)
    best_image_url: str = ""
    language: str = "en"
    regular_price: str = ""
    sale_price: str = ""
    discount: str = ""

    def __post_init__(self):
        # bestImageUrl must point into images whenever there are images
        if self.images and self.best_image_url not in self.images:
            self.best_image_url = self.images[0]

    def image_at(self, index: int | None) -> str:
        """Return the image at ``index``, or the AI pick when out of range."""
        if index is not None and 0 <= index < len(self.images):
            return self.images[index]
        return self.best_image_url

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "images": list(self.images),
            "bestImageUrl": self.best_image_url,
            "language": self.language,
            "regularPrice": self.regular_price,
            "salePrice": self.sale_price,
            "discount": self.discount,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ProductInfo:
        return cls(
            title=data.get("title") or "",
            description=data.get("description") or "",
            images=[str(i) for i in data.get("images") or []],
            best_image_url=data.get("bestImageUrl") or "",
            language=data.get("language") or "en",
            regular_price=data.get("regularPrice") or "",
            sale_price=data.get("salePrice") or "",
            discount=data.get("discount") or "",
        )


@dataclass
class MultiProductInfo:
    products: list[ProductInfo] = field(default_factory=list)
    language: str = "en"

    @classmethod
    def from_products(cls, products: list[ProductInfo]) -> MultiProductInfo:
        """Build from scraped products, voting on the most common language."""
        counts = Counter(p.language for p in products if p.language)
        language = counts.most_common(1)[0][0] if counts else "en"
        return cls(products=list(products), language=language)

    def to_dict(self) -> dict:
        return {
            "products": [p.to_dict() for p in self.products],
            "language": self.language,
        }

    @classmethod
    def from_dict(cls, data: dict) -> MultiProductInfo:
        return cls(
            products=[ProductInfo.from_dict(p) for p in data.get("products") or []],
            language=data.get("language") or "en",
        )


@dataclass
class CountryScrapeResult:
    """Scrape outcome for one country. Exactly one of the two payloads is set."""

    type: ScrapeKind
    urls: list[str]
    product_info: ProductInfo | None = None
    multi_product_info: MultiProductInfo | None = None

    def __post_init__(self):
        self.type = ScrapeKind(self.type)
        if self.type == ScrapeKind.SINGLE:
            if self.product_info is None or self.multi_product_info is not None:
                raise ValueError("SINGLE scrape result requires product_info only")
        else:
            if self.multi_product_info is None or self.product_info is not None:
                raise ValueError("MULTI scrape result requires multi_product_info only")

    @classmethod
    def single(cls, url: str, product: ProductInfo) -> CountryScrapeResult:
        return cls(type=ScrapeKind.SINGLE, urls=[url], product_info=product)

    @classmethod
    def multi(cls, urls: list[str], products: list[ProductInfo]) -> CountryScrapeResult:
        return cls(
            type=ScrapeKind.MULTI,
            urls=list(urls),
            multi_product_info=MultiProductInfo.from_products(products),
        )

    @property
    def products(self) -> list[ProductInfo]:
        if self.product_info is not None:
            return [self.product_info]
        return list(self.multi_product_info.products)

    @property
    def payload(self) -> ProductInfo | MultiProductInfo:
        return self.product_info if self.product_info is not None else self.multi_product_info

    @property
    def language(self) -> str:
        return self.payload.language

    def url_for(self, index: int) -> str:
        """Link for the product at ``index``; falls back to the first URL."""
        if 0 <= index < len(self.urls):
            return self.urls[index]
        return self.urls[0] if self.urls else ""

    def to_dict(self) -> dict:
        data: dict = {"type": self.type.value, "urls": list(self.urls)}
        if self.product_info is not None:
            data["productInfo"] = self.product_info.to_dict()
        else:
            data["multiProductInfo"] = self.multi_product_info.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> CountryScrapeResult:
        kind = ScrapeKind(data.get("type", ScrapeKind.SINGLE))
        urls = [str(u) for u in data.get("urls") or []]
        if kind == ScrapeKind.SINGLE:
            return cls(type=kind, urls=urls, product_info=ProductInfo.from_dict(data.get("productInfo") or {}))
        return cls(
            type=kind,
            urls=urls,
            multi_product_info=MultiProductInfo.from_dict(data.get("multiProductInfo") or {}),
        )


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    html: str

    def copy(self) -> EmailTemplate:
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {"subject": self.subject, "html": self.html}

    @classmethod
    def from_dict(cls, data: dict) -> EmailTemplate:
        return cls(subject=data.get("subject") or "", html=data.get("html") or "")


@dataclass
class GeneratedContent:
    """Marketing copy produced by the content stage."""

    subject: str = ""
    headline: str = ""
    body_text: str = ""
    cta_text: str = ""
    preheader: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> GeneratedContent:
        def _text(key: str) -> str:
            value = data.get(key)
            return value.strip() if isinstance(value, str) else ""

        return cls(
            subject=_text("subject"),
            headline=_text("headline"),
            body_text=_text("bodyText"),
            cta_text=_text("ctaText"),
            preheader=_text("preheader"),
        )

    def to_dict(self) -> dict:
        return {
            "subject": self.subject,
            "headline": self.headline,
            "bodyText": self.body_text,
            "ctaText": self.cta_text,
            "preheader": self.preheader,
        }


@dataclass
class ImageOverrides:
    """User image choices applied before publish-time localization."""

    single_image_index: int | None = None
    multi_image_selections: dict[int, int] = field(default_factory=dict)

    def index_for(self, product_index: int, multi: bool) -> int | None:
        if multi:
            return self.multi_image_selections.get(product_index)
        return self.single_image_index if product_index == 0 else None

    @classmethod
    def normalize(cls, raw) -> ImageOverrides | None:
        """Sanitize a raw payload; keep only non-negative integer indexes."""
        if isinstance(raw, ImageOverrides):
            return raw
        if not isinstance(raw, dict):
            return None

        single = raw.get("singleImageIndex")
        if isinstance(single, bool) or not isinstance(single, int) or single < 0:
            single = None

        selections: dict[int, int] = {}
        multi = raw.get("multiImageSelections")
        if isinstance(multi, dict):
            for key, candidate in multi.items():
                try:
                    product_index = int(key)
                except (TypeError, ValueError):
                    continue
                if isinstance(candidate, bool) or not isinstance(candidate, int):
                    continue
                if product_index >= 0 and candidate >= 0:
                    selections[product_index] = candidate

        if single is None and not selections:
            return None
        return cls(single_image_index=single, multi_image_selections=selections)


@dataclass
class GenerationResult:
    base_country: str
    country_results: dict[str, CountryScrapeResult]
    email_template: EmailTemplate
    preview_template: EmailTemplate
    content: GeneratedContent | None = None

    @property
    def product_info(self) -> ProductInfo | MultiProductInfo:
        return self.country_results[self.base_country].payload

    def to_dict(self) -> dict:
        return {
            "baseCountry": self.base_country,
            "countryResults": {code: r.to_dict() for code, r in self.country_results.items()},
            "emailTemplate": self.email_template.to_dict(),
            "previewTemplate": self.preview_template.to_dict(),
            "productInfo": self.product_info.to_dict(),
            "content": self.content.to_dict() if self.content else None,
        }


@dataclass
class CountryPublishResult:
    country_code: str
    external_id: str | None = None
    error: str | None = None
    already_published: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.external_id is not None

    def to_dict(self) -> dict:
        data: dict = {"countryCode": self.country_code}
        if self.external_id is not None:
            data["externalId"] = self.external_id
        if self.error is not None:
            data["error"] = self.error
        if self.already_published:
            data["alreadyPublished"] = True
        return data


@dataclass
class PublishResult:
    campaign_id: int | None
    per_country_results: list[CountryPublishResult] = field(default_factory=list)
    skipped_countries: list[str] = field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return any(r.error for r in self.per_country_results)

    @property
    def published(self) -> list[CountryPublishResult]:
        return [r for r in self.per_country_results if r.ok]

    def raise_for_failures(self) -> None:
        from templaito.errors import PublishPartialFailure

        if self.partial_failure:
            raise PublishPartialFailure(self)

    def to_dict(self) -> dict:
        return {
            "campaignId": self.campaign_id,
            "perCountryResults": [r.to_dict() for r in self.per_country_results],
            "skippedCountries": list(self.skipped_countries),
        }


@dataclass
class NewsletterMetrics:
    sent_total: int = 0
    open_total: int = 0
    click_total: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0

    def to_dict(self) -> dict:
        return {
            "sentTotal": self.sent_total,
            "openTotal": self.open_total,
            "clickTotal": self.click_total,
            "openRate": self.open_rate,
            "clickRate": self.click_rate,
        }
