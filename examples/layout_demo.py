#!/usr/bin/env python3
"""
Demo script showing similarity layout and spatial queries.
"""

import numpy as np
import matplotlib.pyplot as plt
from py_knet.core import (
    build_similarity_matrix, layout_graph,
    OptimizerConfig, Ray, Point, Rectangle
)
from py_knet.core.spatial_optimizer import SpatialOptimizer
from py_knet.utils import configure_logging


def make_clusters(seed: int, clusters: int = 4, per_cluster: int = 12, dims: int = 8):
    """Random embeddings grouped around a few cluster centers."""
    rng = np.random.default_rng(seed)
    centers = rng.normal(size=(clusters, dims))
    vectors = {}
    labels = {}
    for c in range(clusters):
        for i in range(per_cluster):
            node_id = f"c{c}_{i}"
            vectors[node_id] = (centers[c] + rng.normal(scale=0.3, size=dims)).tolist()
            labels[node_id] = c
    return vectors, labels


def main():
    configure_logging(level="INFO")

    vectors, labels = make_clusters(seed=42)
    similarities = build_similarity_matrix(vectors, min_similarity=0.2)

    # Compare mappings before committing to one
    optimizer = SpatialOptimizer(config=OptimizerConfig(seed="demo"))
    candidates = {
        "exponential": "exponential",
        "linear": "linear",
        "powerLaw": "powerLaw",
        "threshold": {"kind": "threshold", "threshold": 0.7},
    }
    ranking = optimizer.benchmark_mapping_algorithms(similarities, list(candidates.items()))
    print("Mapping ranking:")
    for entry in ranking:
        print(f"  {entry.name:12s} stress={entry.stress_score:8.2f} quality={entry.quality_metric:.4f}")

    best = ranking[0].name
    result = layout_graph(similarities, mapping=candidates[best],
                          optimizer_config=OptimizerConfig(seed="demo", max_iterations=100))
    print(f"\nLayout stress with {best}: {result.stress:.2f}")
    print(f"Index: {result.index.get_statistics()}")

    # Spatial queries
    center = result.positions[0]
    nearby = result.index.query_point(center, 60)
    region = result.index.query_region(Rectangle(0, 0, 400, 300))
    hits = result.index.query_ray(Ray(Point(0, 0), Point(800, 600)))
    print(f"{len(nearby)} nodes within 60 of {result.node_ids[0]}")
    print(f"{len(region)} nodes in the top-left quadrant")
    print(f"{len(hits)} nodes along the diagonal ray")

    # Plot
    xs = [p.x for p in result.positions]
    ys = [p.y for p in result.positions]
    colors = [labels[node_id] for node_id in result.node_ids]

    fig, ax = plt.subplots(figsize=(10, 7.5))
    ax.scatter(xs, ys, c=colors, cmap="tab10", s=40)
    ax.scatter([center.x], [center.y], marker="x", color="black", s=120, label="query point")
    ax.add_patch(plt.Circle((center.x, center.y), 60, fill=False, linestyle="--"))
    ax.plot([0, 800], [0, 600], color="grey", linewidth=0.8, label="ray")
    for hit in hits:
        ax.annotate(hit.node.id, (hit.node.x, hit.node.y), fontsize=7)
    ax.set_xlim(0, 800)
    ax.set_ylim(0, 600)
    ax.set_title(f"Similarity layout ({best} mapping)")
    ax.legend(loc="upper right")

    plt.tight_layout()
    plt.savefig("layout_demo.png", dpi=150)
    print("Saved layout_demo.png")


if __name__ == "__main__":
    main()
