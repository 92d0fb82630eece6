"""Plot the azimuthal and radial profiles of an image's power spectrum."""

import argparse
import logging
import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from spectral_screener import SpectralAnalyzer
from spectral_screener.scoring import CARDINAL_ANGLES

# Configure logging
logging.basicConfig(level=logging.WARNING)


def plot_profiles(image_path: Path, analyzer: SpectralAnalyzer, output_path: Path = None):
    """
    Chart the profiles and polar view for a single image.

    Args:
        image_path: Path to the image file
        analyzer: SpectralAnalyzer instance
        output_path: Optional path to save the figure
    """
    print(f"Analyzing image: {image_path}")
    result = analyzer.analyze(image_path)
    print(f"  Grid score: {result.anomaly_score:.2f}x ({result.timings.backend})")

    fig = plt.figure(figsize=(16, 10))
    gs = fig.add_gridspec(2, 2, hspace=0.35, wspace=0.25)
    ax_azimuthal = fig.add_subplot(gs[0, :])
    ax_radial = fig.add_subplot(gs[1, 0])
    ax_polar = fig.add_subplot(gs[1, 1])

    fig.suptitle(
        f'Spectral Profiles: {Path(image_path).name}\n'
        f'Grid score: {result.anomaly_score:.2f}x | '
        f'FFT {result.fft_width}x{result.fft_height}',
        fontsize=14,
        fontweight='bold'
    )

    angles = np.arange(result.azimuthal.size)
    ax_azimuthal.plot(angles, result.azimuthal, color='#bdc3c7', linewidth=1, label='Raw')
    ax_azimuthal.plot(
        angles, result.smoothed_azimuthal, color='#2c3e50', linewidth=2, label='Smoothed'
    )
    for angle in CARDINAL_ANGLES:
        ax_azimuthal.axvline(x=angle, color='red', linestyle='--', linewidth=1, alpha=0.5)
    ax_azimuthal.set_xlim(0, 359)
    ax_azimuthal.set_xlabel('Angle (degrees)', fontsize=11)
    ax_azimuthal.set_ylabel('Mean Power', fontsize=11)
    ax_azimuthal.set_title('Azimuthal Profile: Grids Spike at Cardinal Angles', fontsize=12)
    ax_azimuthal.grid(True, alpha=0.3)
    ax_azimuthal.legend()

    radii = np.arange(1, result.radial.size + 1)
    ax_radial.semilogy(radii, np.maximum(result.radial, np.finfo(float).tiny), color='#8e44ad')
    ax_radial.set_xlabel('Radius (frequency bins)', fontsize=11)
    ax_radial.set_ylabel('Mean Power (log)', fontsize=11)
    ax_radial.set_title('Radial Profile', fontsize=12)
    ax_radial.grid(True, alpha=0.3)

    ax_polar.imshow(result.polar.pixels, aspect='auto')
    ax_polar.set_title('Polar View (top = highest frequency)', fontsize=12)
    ax_polar.set_xlabel('Angle', fontsize=11)
    ax_polar.set_yticks([])

    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=150, bbox_inches='tight')
        print(f"  Figure saved to: {output_path}")
    else:
        plt.show()

    plt.close(fig)
    return result


def main():
    """Main function for command-line usage."""
    parser = argparse.ArgumentParser(description='Plot spectral profiles for one image')
    parser.add_argument('image', type=str, help='Path to the image file to analyze')
    parser.add_argument('-o', '--output', type=str, default=None, help='Save the figure here')
    parser.add_argument('--channel', choices=['red', 'green', 'blue', 'luma'], default='luma')
    parser.add_argument('--log-scale', action='store_true', help='Log-compress the polar view')
    args = parser.parse_args()

    image_path = Path(args.image)
    if not image_path.exists():
        print(f"Error: Image not found: {image_path}", file=sys.stderr)
        sys.exit(1)

    options = {'channel': args.channel, 'log_scale': args.log_scale}
    with SpectralAnalyzer(options) as analyzer:
        plot_profiles(image_path, analyzer, Path(args.output) if args.output else None)


if __name__ == "__main__":
    main()
