"""TemplAIto: product-page URLs to AI-generated marketing emails, published per country."""

__version__ = "0.1.0"
