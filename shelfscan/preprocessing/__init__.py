from .image_normalizer import NormalizeResult, image_dimensions, normalize_image, try_normalize_image

__all__ = ["NormalizeResult", "image_dimensions", "normalize_image", "try_normalize_image"]
