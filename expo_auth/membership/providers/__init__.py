"""Reference membership providers."""

from .rcp import RestrictContentPro
from .woocommerce import WooCommerceMemberships

__all__ = ['RestrictContentPro', 'WooCommerceMemberships']
