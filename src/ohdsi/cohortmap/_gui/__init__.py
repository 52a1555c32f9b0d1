from .leaflet_surface import LeafletSurface

__all__ = ["LeafletSurface"]
