"""
Command-Line Interface for Impostor Generator

Usage:
    impgen tree.obj -o tree_impostor.glb
    impgen tree.obj --views 8 --atlas-height 1024 --profile octagon -o tree
    impgen tree.obj --cross-section 0.6:0.8 --render-mode high_quality --format glb obj

"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional
import time

from . import __version__
from .config import (
    HorizontalCrossSection, ImpostorSettings, LightingSettings, MaterialSettings,
    MeshProfile, OctagonParams, RenderMode, RESOLUTION_PRESETS,
    SUPERSAMPLING_PRESETS, VIEW_PRESETS
)
from .generator import BatchProcessor, ImpostorGenerator
from .projection import CoordinateSystem


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="impgen",
        description="Impostor Generator - Convert 3D models to atlas-textured billboard impostors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  impgen tree.obj -o tree.glb
      Capture 6 views at 512 px and export a glTF impostor

  impgen tree.obj --views 8 --profile octagon --render-mode high_quality -o tree
      Tapered planes with explicit back faces

  impgen tree.obj --cross-section 0.6:0.8 --cross-section 0.3:0.5:45 -o tree
      Add two horizontal canopy quads textured from a top-down view

  impgen --batch models/ --output-dir impostors/ --format glb obj
      Batch process all OBJ files in the models directory

Presets:
  views           {", ".join(str(v) for v in VIEW_PRESETS)}
  atlas height    {", ".join(str(v) for v in RESOLUTION_PRESETS)}
  supersampling   {", ".join(str(v) for v in SUPERSAMPLING_PRESETS)}
        """
    )

    # Input
    parser.add_argument(
        "input",
        nargs="?",
        help="Input model file (.obj, .glb, .gltf, .ply, .stl, .off)"
    )

    # Output
    parser.add_argument(
        "-o", "--output",
        help="Output file path (extension is replaced per format)"
    )

    # Capture settings
    parser.add_argument(
        "--views",
        type=int,
        default=6,
        help="Number of radial views (default: 6)"
    )

    parser.add_argument(
        "--front-face-only",
        action="store_true",
        help="Capture only the front half of the radial views"
    )

    parser.add_argument(
        "--atlas-height",
        type=int,
        default=512,
        help="Snapshot and atlas height in pixels (default: 512)"
    )

    parser.add_argument(
        "--supersampling",
        type=int,
        choices=SUPERSAMPLING_PRESETS,
        default=1,
        help="Render scale before downsampling (default: 1)"
    )

    parser.add_argument(
        "--frame-padding",
        type=float,
        default=0.05,
        help="Margin around the object in each snapshot, 0-0.3 (default: 0.05)"
    )

    parser.add_argument(
        "--distance-offset",
        type=float,
        default=2.0,
        help="Extra camera distance beyond the bounds (default: 2.0)"
    )

    parser.add_argument(
        "--top-down",
        action="store_true",
        help="Also capture a top-down view (implied by --cross-section)"
    )

    # Post-processing
    parser.add_argument(
        "--alpha-clip",
        type=float,
        default=0.1,
        help="Alpha at or above this becomes opaque (default: 0.1)"
    )

    parser.add_argument(
        "--no-edge-padding",
        action="store_true",
        help="Disable color bleed into transparent texels"
    )

    parser.add_argument(
        "--padding-iterations",
        type=int,
        default=3,
        help="Edge padding rings, 1-10 (default: 3)"
    )

    parser.add_argument(
        "--no-normal-map",
        action="store_true",
        help="Don't capture a normal atlas"
    )

    # Lighting
    parser.add_argument(
        "--ambient",
        type=float,
        default=1.0,
        help="Ambient light multiplier (default: 1.0)"
    )

    parser.add_argument(
        "--key-intensity",
        type=float,
        default=1.0,
        help="Key light intensity (default: 1.0)"
    )

    # Mesh settings
    parser.add_argument(
        "--profile",
        choices=[p.value for p in MeshProfile],
        default="quad",
        help="Radial plane shape (default: quad)"
    )

    parser.add_argument(
        "--octagon",
        nargs=4,
        type=float,
        metavar=("BOTTOM", "TOP", "CENTER", "SHOULDER"),
        help="Octagon width fractions and shoulder placement (default: 0.3 0.2 0.5 0.4)"
    )

    parser.add_argument(
        "--render-mode",
        choices=[m.value for m in RenderMode],
        default="efficient",
        help="efficient: double-sided material; high_quality: explicit back planes"
    )

    parser.add_argument(
        "--cross-section",
        action="append",
        default=[],
        metavar="H[:S[:R]]",
        help="Horizontal quad at height fraction H, size S, rotation R degrees (repeatable)"
    )

    parser.add_argument(
        "--vertical-offset",
        type=float,
        default=-0.2,
        help="Manual pivot correction in meters (default: -0.2)"
    )

    parser.add_argument(
        "--quad-offset",
        type=float,
        default=0.001,
        help="Spacing between consecutive radial planes (default: 0.001)"
    )

    parser.add_argument(
        "--xz-scale",
        type=float,
        default=1.0,
        help="Horizontal scale of the exported node, 1-2 (default: 1.0)"
    )

    parser.add_argument(
        "--smoothness",
        type=float,
        default=0.0,
        help="Material smoothness, roughness is 1 - smoothness (default: 0.0)"
    )

    parser.add_argument(
        "--material-alpha-clip",
        type=float,
        default=0.5,
        help="Alpha cutoff written to the exported material (default: 0.5)"
    )

    # Output settings
    parser.add_argument(
        "-f", "--format",
        nargs="+",
        choices=["glb", "gltf", "obj", "png"],
        default=["glb"],
        help="Output format(s) (default: glb)"
    )

    parser.add_argument(
        "--coordinate-system",
        choices=["gltf", "godot", "blender", "internal"],
        default="gltf",
        help="Target coordinate system (default: gltf)"
    )

    parser.add_argument(
        "--name",
        default="Impostor",
        help="Base name for batch outputs and materials (default: Impostor)"
    )

    # Batch processing
    parser.add_argument(
        "--batch",
        help="Batch process directory of models"
    )

    parser.add_argument(
        "--output-dir",
        help="Output directory for batch processing"
    )

    parser.add_argument(
        "--pattern",
        default="*.obj",
        help="File pattern for batch processing (default: *.obj)"
    )

    # Misc
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with statistics"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print mesh statistics"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def get_coordinate_system(name: str) -> CoordinateSystem:
    """Convert string to CoordinateSystem enum."""
    return CoordinateSystem(name)


def build_settings(args) -> ImpostorSettings:
    """Translate parsed arguments into ImpostorSettings."""
    octagon = OctagonParams(*args.octagon) if args.octagon else OctagonParams()
    sections = [HorizontalCrossSection.parse(text) for text in args.cross_section]

    return ImpostorSettings(
        views=args.views,
        front_face_only=args.front_face_only,
        atlas_height=args.atlas_height,
        supersampling=args.supersampling,
        edge_padding=not args.no_edge_padding,
        edge_padding_iterations=args.padding_iterations,
        alpha_clip_threshold=args.alpha_clip,
        generate_normal_map=not args.no_normal_map,
        profile=MeshProfile(args.profile),
        octagon=octagon,
        render_mode=RenderMode(args.render_mode),
        cross_sections=sections,
        include_top_down=args.top_down,
        capture_distance_offset=args.distance_offset,
        frame_padding=args.frame_padding,
        vertical_offset=args.vertical_offset,
        quad_offset=args.quad_offset,
        lighting=LightingSettings(ambient_multiplier=args.ambient, key_intensity=args.key_intensity),
        material=MaterialSettings(alpha_clip=args.material_alpha_clip, smoothness=args.smoothness),
        xz_scale=args.xz_scale,
        base_name=args.name
    )


def print_stats(stats: dict):
    print("\nMesh Statistics:")
    print(f"  Mesh: {stats['name']}")
    if "source_triangles" in stats:
        print(f"  Source triangles: {stats['source_triangles']}")
    print(f"  Impostor vertices: {stats['vertices']}")
    print(f"  Impostor triangles: {stats['triangles']}")
    if "atlas_size" in stats:
        print(f"  Atlas: {stats['atlas_size'][0]}x{stats['atlas_size'][1]} ({stats['views']} views)")
    size = stats["size"]
    print(f"  Size: {size[0]:.3f} x {size[1]:.3f} x {size[2]:.3f}")


def process_single(args) -> int:
    """Process a single model file."""
    if not args.input:
        print("Error: No input file specified", file=sys.stderr)
        return 1

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    # Determine output path
    if args.output:
        output_base = Path(args.output)
    else:
        output_base = input_path.with_name(f"{input_path.stem}_{args.name}")

    start_time = time.time()

    try:
        settings = build_settings(args)
        generator = ImpostorGenerator(settings)

        if args.verbose:
            print(f"Loading: {input_path}")
        generator.load_mesh(input_path)

        def report(done, total, label):
            if args.verbose:
                print(f"  [{done}/{total}] {label}")

        if args.verbose:
            print(f"Capturing {settings.views} views at {settings.atlas_height}px...")
        generator.generate(on_progress=report)

        if args.stats or args.verbose:
            print_stats(generator.get_mesh_stats())

        coord_sys = get_coordinate_system(args.coordinate_system)

        for fmt in args.format:
            if fmt in ("glb", "gltf"):
                output_path = output_base.with_suffix(".glb")
                generator.export_glb(output_path, coordinate_system=coord_sys)
            elif fmt == "obj":
                output_path = output_base.with_suffix(".obj")
                generator.export_obj(output_path, coordinate_system=coord_sys)
            else:
                output_path = generator.export_textures(output_base)["albedo"]
            if args.verbose:
                print(f"Exported: {output_path}")

        generator.release()

        elapsed = time.time() - start_time
        if args.verbose:
            print(f"\nCompleted in {elapsed:.2f}s")

        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def process_batch(args) -> int:
    """Process a directory of models."""
    batch_dir = Path(args.batch)
    if not batch_dir.is_dir():
        print(f"Error: Batch directory not found: {batch_dir}", file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir) if args.output_dir else batch_dir / "impostors"
    start_time = time.time()

    try:
        processor = BatchProcessor(build_settings(args))
        outputs = processor.process_directory(
            batch_dir,
            output_dir,
            pattern=args.pattern,
            formats=args.format,
            coordinate_system=get_coordinate_system(args.coordinate_system)
        )

        elapsed = time.time() - start_time
        print(f"Processed {len(outputs)} files in {elapsed:.2f}s")
        print(f"Output directory: {output_dir}")

        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.batch:
        return process_batch(args)
    return process_single(args)


if __name__ == "__main__":
    sys.exit(main())
