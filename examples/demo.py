#!/usr/bin/env python3
"""
Impostor Generator Demo Script

This script demonstrates the full impostor pipeline by:
1. Building synthetic box models (no external files needed)
2. Capturing them with several view counts and mesh profiles
3. Exporting to all supported formats
4. Printing statistics and timings

Run with: python examples/demo.py
"""

import sys
from pathlib import Path
import time

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from impostor_generator import (
    HorizontalCrossSection, ImpostorGenerator, ImpostorSettings, MeshProfile,
    RenderMode, SceneMesh
)

BARK = (0.40, 0.26, 0.13, 1.0)
LEAVES = (0.13, 0.55, 0.13, 1.0)
STONE = (0.55, 0.55, 0.58, 1.0)


def create_test_tree() -> SceneMesh:
    """
    A trunk with three stacked canopy boxes, narrowing toward the top.
    """
    parts = [SceneMesh.box(center=(0.0, 0.6, 0.0), size=(0.25, 1.2, 0.25), color=BARK)]
    for i, width in enumerate((1.6, 1.2, 0.7)):
        y = 1.3 + i * 0.55
        parts.append(SceneMesh.box(center=(0.0, y, 0.0), size=(width, 0.6, width), color=LEAVES))
    return SceneMesh.merge(parts, name="tree")


def create_test_rock() -> SceneMesh:
    """A lopsided pile of three boxes."""
    return SceneMesh.merge([
        SceneMesh.box(center=(0.0, 0.3, 0.0), size=(1.2, 0.6, 0.9), color=STONE),
        SceneMesh.box(center=(0.25, 0.7, 0.1), size=(0.6, 0.4, 0.5), color=STONE),
        SceneMesh.box(center=(-0.3, 0.5, -0.2), size=(0.4, 0.5, 0.4), color=STONE),
    ], name="rock")


def create_test_pillar() -> SceneMesh:
    """A tall thin box."""
    return SceneMesh.box(center=(0.0, 1.5, 0.0), size=(0.3, 3.0, 0.3), color=STONE, name="pillar")


def run_demo():
    """Run the demonstration."""
    print("=" * 60)
    print("Impostor Generator - Demo")
    print("=" * 60)
    print()

    # Create output directory
    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    models = [
        ("tree", create_test_tree(), ImpostorSettings(
            views=8,
            atlas_height=256,
            supersampling=2,
            profile=MeshProfile.OCTAGON,
            cross_sections=[HorizontalCrossSection(0.55, 0.9), HorizontalCrossSection(0.8, 0.6, 45.0)]
        )),
        ("rock", create_test_rock(), ImpostorSettings(
            views=6,
            atlas_height=128,
            render_mode=RenderMode.HIGH_QUALITY
        )),
        ("pillar", create_test_pillar(), ImpostorSettings(
            views=4,
            atlas_height=128,
            front_face_only=True
        )),
    ]

    total_start = time.time()

    for name, scene, settings in models:
        print(f"\n--- Processing: {name} ---")
        print(f"Source: {scene.vertex_count} vertices, {scene.triangle_count} triangles")

        model_start = time.time()
        generator = ImpostorGenerator(settings).load_scene(scene)

        capture_start = time.time()
        generator.capture(on_progress=lambda done, total, label: print(f"  [{done}/{total}] {label}"))
        capture_time = time.time() - capture_start

        mesh_start = time.time()
        generator.build_mesh()
        mesh_time = time.time() - mesh_start

        stats = generator.get_mesh_stats()
        print(f"\n  Capture: {capture_time*1000:.1f}ms")
        print(f"  Atlas: {stats['atlas_size'][0]}x{stats['atlas_size'][1]} ({stats['views']} views)")
        print(f"  Mesh generation: {mesh_time*1000:.1f}ms")
        print(f"  Mesh: {stats['name']}")
        print(f"  Vertices: {stats['vertices']}")
        print(f"  Triangles: {stats['triangles']}")

        print(f"\n  Exporting...")
        base_path = output_dir / name

        export_start = time.time()

        try:
            generator.export_glb(base_path.with_suffix(".glb"))
            print(f"    Saved: {base_path.with_suffix('.glb')}")
        except Exception as e:
            print(f"    GLB export failed: {e}")

        try:
            written = generator.export_obj(base_path.with_suffix(".obj"))
            for path in written.values():
                print(f"    Saved: {path}")
        except Exception as e:
            print(f"    OBJ export failed: {e}")

        generator.release()

        export_time = time.time() - export_start
        model_time = time.time() - model_start

        print(f"    Export time: {export_time*1000:.1f}ms")
        print(f"    Total time: {model_time*1000:.1f}ms")

    total_time = time.time() - total_start

    print("\n" + "=" * 60)
    print(f"Demo complete! Total time: {total_time:.2f}s")
    print(f"Output files in: {output_dir}")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    run_demo()
