"""Analyze images for periodic grid artifacts from the command line."""

import argparse
import logging
import sys
from pathlib import Path

from PIL import Image

from spectral_screener import ConfigurationError, SpectralAnalyzer
from spectral_screener.polar import render_spectrogram

# Configure logging
logging.basicConfig(level=logging.INFO)


def fft_size_arg(value: str):
    """argparse type for --fft-size: 'native' or an integer."""
    if value == 'native':
        return value
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"expected 'native' or a power of two, got {value!r}"
        ) from None


def save_rgba(pixels, output_path: Path):
    """Write an (H, W, 4) uint8 array as a PNG."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(pixels).save(output_path)
    print(f"  Saved: {output_path}")


def main():
    """Main function for command-line usage."""
    parser = argparse.ArgumentParser(
        description='Spectral grid analysis - score periodic artifacts in images',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze an image with default settings
  python analyze_image.py path/to/image.jpg

  # Force the interpreted backend at a fixed transform size
  python analyze_image.py path/to/image.jpg --engine interpreted --fft-size 1024

  # Save the polar view and the log-scaled spectrogram
  python analyze_image.py path/to/image.jpg --log-scale --polar polar.png --spectrogram spectrum.png
        """
    )

    parser.add_argument('images', nargs='+', help='Image files to analyze')
    parser.add_argument(
        '--fft-size',
        type=fft_size_arg,
        default='native',
        help="Transform size: 'native' or a power of two up to 8192 (default: native)"
    )
    parser.add_argument('--signal', choices=['raw', 'laplacian'], default='laplacian')
    parser.add_argument('--channel', choices=['red', 'green', 'blue', 'luma'], default='blue')
    parser.add_argument('--window', action='store_true', help='Apply a Hann window')
    parser.add_argument('--log-scale', action='store_true', help='Log-compress the visual field')
    parser.add_argument('--suppress-dc', action='store_true', help='Hide the DC term in renders')
    parser.add_argument('--engine', choices=['auto', 'native', 'interpreted'], default='auto')
    parser.add_argument('--polar-size', type=int, nargs=2, default=[400, 300], metavar=('W', 'H'))
    parser.add_argument('--seed', type=int, default=None, help='Seed for polar normalization')
    parser.add_argument('--polar', type=str, default=None, help='Save the polar view (single image)')
    parser.add_argument(
        '--spectrogram', type=str, default=None, help='Save the spectrogram (single image)'
    )

    args = parser.parse_args()

    options = {
        'fft_size': args.fft_size,
        'signal': args.signal,
        'channel': args.channel,
        'window': args.window,
        'log_scale': args.log_scale,
        'suppress_dc': args.suppress_dc,
        'engine': args.engine,
        'polar_width': args.polar_size[0],
        'polar_height': args.polar_size[1],
    }

    try:
        analyzer = SpectralAnalyzer(options, seed=args.seed)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    with analyzer:
        for image in args.images:
            image_path = Path(image)
            if not image_path.exists():
                print(f"Error: Image not found: {image_path}", file=sys.stderr)
                continue

            result = analyzer.analyze(image_path)
            timings = result.timings

            print("\n" + "=" * 60)
            print(f"Image: {image_path}")
            print("=" * 60)
            print(f"Transform: {result.fft_width}x{result.fft_height} ({timings.backend})")
            print(f"Grid score: {result.anomaly_score:.2f}x")
            for angle, ratio in result.cardinal_ratios.items():
                print(f"  {angle:3d} deg: {ratio:8.2f}x")
            print(
                f"Timings: extract {timings.extraction_ms:.1f}ms | "
                f"fft {timings.transform_ms:.1f}ms | scan {timings.scan_ms:.1f}ms | "
                f"remap {timings.remap_ms:.1f}ms | total {timings.total_ms:.1f}ms"
            )

            if len(args.images) == 1:
                if args.polar:
                    save_rgba(result.polar.pixels, Path(args.polar))
                if args.spectrogram:
                    field = result.magnitude
                    pixels = render_spectrogram(field.visual, field.width, field.height, seed=args.seed)
                    save_rgba(pixels, Path(args.spectrogram))


if __name__ == "__main__":
    main()
