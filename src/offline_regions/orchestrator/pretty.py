from ..bounds import CoordinateBounds
from ..events import PointOfInterest


def print_bounds_info(bounds: CoordinateBounds):
    """
    Print bounds with Google Maps URLs for the corners.

    Args:
        bounds: Region bounds
    """
    print("\n📍 Region bounds:")
    print(
        f"   SW corner: https://www.google.com/maps/?q={bounds.south:.6f},{bounds.west:.6f}"
    )
    print(
        f"   NE corner: https://www.google.com/maps/?q={bounds.north:.6f},{bounds.east:.6f}"
    )
    print(f"   Span: {bounds.height:.6f}° lat x {bounds.width:.6f}° lng")
    if bounds.crosses_antimeridian:
        print("   (wraps across the antimeridian)")
    print()


def print_region_plan_row(
    index: int, poi: PointOfInterest, bounds: CoordinateBounds, tile_count: int
):
    """Print one line of a download plan."""
    west, south, east, north = bounds.as_tuple()
    print(
        f"{index:>4} {poi.id:<20} {poi.source.value:<7} "
        f"({west:.5f}, {south:.5f}, {east:.5f}, {north:.5f}) {tile_count:>8} tiles"
        f"  {poi.title or ''}"
    )
