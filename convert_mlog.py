#!/usr/bin/env python3
"""
Convert images into Mindustry logic (mlog) draw programs.

The image is split into solid-color rectangles which are emitted as
`draw color` / `draw rect` instructions, with a `drawflush` every 250 draw
instructions and a new program whenever the instructions-per-processor
budget is exceeded.

Usage:
    python convert_mlog.py --small image.png
    python convert_mlog.py --large --mode letterbox --ipp 500 image.png
"""
import os
import sys
import argparse
import numpy as np
from PIL import Image, ImageOps

__version__ = "1.0.0"

SMALL_DISPLAY_RESOLUTION = 80
LARGE_DISPLAY_RESOLUTION = 176
DEFAULT_IPP = 990
FLUSH_INTERVAL = 250
DEFAULT_DISPLAY = 'display1'
SCALING_MODES = ('scale', 'letterbox', 'crop')


def load_image(input_path):
    """Load an image as an RGBA pixel grid in display orientation.

    Mindustry displays put y=0 at the bottom, so the image is flipped
    vertically before it is handed to the scanner.

    Returns: uint8 array of shape (height, width, 4), indexed grid[y, x]
    """
    with Image.open(input_path) as img:
        img = ImageOps.flip(img.convert('RGBA'))
        return np.array(img, dtype=np.uint8)


def grow_rectangle(colors, claimed, x, y):
    """Grow one rectangle from the unclaimed point (x, y).

    Extends right along the starting row, then down one row at a time while
    the pixel below the starting column keeps the same color. Each row's
    right extent is recorded and the narrowest one bounds the rectangle, so
    every included row is fully covered.

    Returns: (x1, y1, x2, y2) with inclusive bounds
    """
    height = len(colors)
    width = len(colors[0])
    color = colors[y][x]

    def row_extent(row):
        end = x
        while end + 1 < width and not claimed[row, end + 1] and colors[row][end + 1] == color:
            end += 1
        return end

    extents = [row_extent(y)]
    last_y = y
    while last_y + 1 < height and not claimed[last_y + 1, x] and colors[last_y + 1][x] == color:
        last_y += 1
        extents.append(row_extent(last_y))

    return (x, y, min(extents), last_y)


def scan_rectangles(grid):
    """Decompose a pixel grid into same-color rectangles.

    Points are visited column by column (x outer, y inner). Every unclaimed
    point starts a new rectangle which is claimed in full, so the result
    partitions the grid. The decomposition is greedy and deterministic but
    not minimal.

    Args:
        grid: array-like of shape (height, width, 4)

    Returns: dict mapping (r, g, b, a) to a list of rectangles, in the order
        colors were first met during the scan
    """
    grid = np.asarray(grid, dtype=np.uint8)
    if grid.ndim != 3 or grid.shape[2] != 4:
        raise ValueError(f"Expected an RGBA grid of shape (height, width, 4), got {grid.shape}")
    if grid.shape[0] == 0 or grid.shape[1] == 0:
        return {}

    height, width = grid.shape[:2]
    colors = [[tuple(px) for px in row] for row in grid.tolist()]
    claimed = np.zeros((height, width), dtype=bool)
    color_groups = {}

    for x in range(width):
        for y in range(height):
            if claimed[y, x]:
                continue
            rect = grow_rectangle(colors, claimed, x, y)
            x1, y1, x2, y2 = rect
            claimed[y1:y2 + 1, x1:x2 + 1] = True
            color_groups.setdefault(colors[y][x], []).append(rect)

    return color_groups


def compute_scale(mode, width, height, resolution):
    """Return (x_scale, y_scale) for a presentation mode.

    scale     - stretch each axis independently to fill the display
    letterbox - one uniform factor so the longest side fits the display
    crop      - no scaling; anything past the display edge is cut off
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if resolution <= 0:
        raise ValueError(f"Display resolution must be positive, got {resolution}")

    if mode == 'scale':
        return resolution / width, resolution / height
    elif mode == 'letterbox':
        scale = resolution / max(width, height)
        return scale, scale
    elif mode == 'crop':
        return 1.0, 1.0
    raise ValueError(f"Unknown scaling mode '{mode}' (expected one of: {', '.join(SCALING_MODES)})")


def map_rect(rect, x_scale, y_scale):
    """Map an inclusive source rectangle to display (x, y, w, h).

    Uses round() (ties to even). Rectangles are not clipped to the display.
    """
    x1, y1, x2, y2 = rect
    return (
        int(round(x1 * x_scale)),
        int(round(y1 * y_scale)),
        int(round((x2 - x1 + 1) * x_scale)),
        int(round((y2 - y1 + 1) * y_scale)),
    )


def format_color(color):
    r, g, b, a = color
    return f"draw color {r} {g} {b} {a} 0 0"


def format_rect(x, y, w, h):
    return f"draw rect {x} {y} {w} {h} 0 0"


def format_flush(display=DEFAULT_DISPLAY):
    return f"drawflush {display}"


def finalize_program(lines):
    """Join instruction lines into program text, one line per instruction."""
    return ''.join(line + '\n' for line in lines)


def pack_programs(color_groups, x_scale, y_scale, budget=DEFAULT_IPP, display=DEFAULT_DISPLAY):
    """Pack rectangles into mlog programs.

    Two counters run side by side:
    - flush counter: draw instructions since the last drawflush. At
      FLUSH_INTERVAL the buffer is flushed and the color set again.
    - instruction counter: instructions in the current program. Once it
      exceeds `budget` the program is flushed and closed, and the next one
      starts by setting the current color.

    Args:
        color_groups: dict of color -> rectangles, as returned by scan_rectangles
        x_scale, y_scale: factors from compute_scale
        budget: instructions per processor
        display: display link name used by drawflush

    Returns: list of program texts, every one ending with a drawflush
    """
    if budget <= 0:
        raise ValueError(f"Instructions per processor must be positive, got {budget}")

    flush_line = format_flush(display)
    programs = []
    lines = []
    flush_count = 0
    instruction_count = 0

    for color, rects in color_groups.items():
        color_line = format_color(color)
        lines.append(color_line)
        flush_count += 1
        instruction_count += 1

        for rect in rects:
            lines.append(format_rect(*map_rect(rect, x_scale, y_scale)))
            flush_count += 1
            instruction_count += 1

            # Flush the draw buffer and set the color again
            if flush_count >= FLUSH_INTERVAL:
                flush_count = 0
                lines.append(flush_line)
                lines.append(color_line)
                instruction_count += 2

            if instruction_count > budget:
                lines.append(flush_line)
                programs.append(finalize_program(lines))
                lines = [color_line]
                instruction_count = 1

    lines.append(flush_line)
    programs.append(finalize_program(lines))
    return programs


def convert_image(grid, resolution, mode='scale', budget=DEFAULT_IPP, display=DEFAULT_DISPLAY):
    """Convert a display-oriented pixel grid into mlog program texts."""
    if budget <= 0:
        raise ValueError(f"Instructions per processor must be positive, got {budget}")
    if resolution <= 0:
        raise ValueError(f"Display resolution must be positive, got {resolution}")
    if mode not in SCALING_MODES:
        raise ValueError(f"Unknown scaling mode '{mode}' (expected one of: {', '.join(SCALING_MODES)})")

    grid = np.asarray(grid, dtype=np.uint8)
    color_groups = scan_rectangles(grid)
    n_rects = sum(len(rects) for rects in color_groups.values())
    print(f"  Found {len(color_groups)} unique colors")
    print(f"  Decomposed into {n_rects} rectangles")

    if color_groups:
        height, width = grid.shape[:2]
        x_scale, y_scale = compute_scale(mode, width, height, resolution)
    else:
        print("Warning: Empty image, output will only flush the display")
        x_scale = y_scale = 1.0

    programs = pack_programs(color_groups, x_scale, y_scale, budget=budget, display=display)
    print(f"  Packed into {len(programs)} program(s) of at most {budget} instructions")
    return programs


def save_programs(programs, output_dir='.'):
    """Write program n to <output_dir>/<n>.txt. Returns the written paths."""
    os.makedirs(output_dir, exist_ok=True)
    paths = []
    for index, text in enumerate(programs):
        path = os.path.join(output_dir, f"{index}.txt")
        with open(path, 'w', encoding='utf-8') as f:
            f.write(text)
        print(f"Written to {path}")
        paths.append(path)
    return paths


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='convert-mlog',
        description="Convert images into Mindustry logic display programs")
    parser.add_argument('image', help='Input image path')
    parser.add_argument('-v', '--version', action='version', version=f"%(prog)s {__version__}")
    display_size = parser.add_mutually_exclusive_group(required=True)
    display_size.add_argument(
        '-s', '--small',
        dest='resolution', action='store_const', const=SMALL_DISPLAY_RESOLUTION,
        help=f'Output for Small Logic Display ({SMALL_DISPLAY_RESOLUTION}x{SMALL_DISPLAY_RESOLUTION} resolution)')
    display_size.add_argument(
        '-l', '--large',
        dest='resolution', action='store_const', const=LARGE_DISPLAY_RESOLUTION,
        help=f'Output for Large Logic Display ({LARGE_DISPLAY_RESOLUTION}x{LARGE_DISPLAY_RESOLUTION} resolution)')
    parser.add_argument(
        '-i', '--ipp',
        type=int, default=None,
        help=f'Instructions per processor. Defaults to {DEFAULT_IPP} if unset')
    parser.add_argument(
        '-m', '--mode',
        type=str.lower, choices=SCALING_MODES, default=None,
        help="Scaling mode. 'scale' stretches each axis to fill the display, "
             "'letterbox' scales uniformly so the whole image fits (blank bars on the short side), "
             "'crop' does not scale at all (large images are cut off, small ones leave blank space). "
             "Defaults to 'scale'")
    parser.add_argument('-o', '--output-dir', default='.', help='Directory for the program files (default: current directory)')
    parser.add_argument('--display', default=DEFAULT_DISPLAY, help=f'Display link name used by drawflush (default: {DEFAULT_DISPLAY})')
    args = parser.parse_args(argv)

    ipp = args.ipp
    if ipp is None:
        print(f"Defaulting to {DEFAULT_IPP} ipp")
        ipp = DEFAULT_IPP
    elif ipp <= 0:
        print("Error: Invalid argument passed to --ipp (must be a positive integer)")
        sys.exit(1)

    mode = args.mode
    if mode is None:
        print("Defaulting to 'scale' scaling mode")
        mode = 'scale'

    # Decode first so a missing or malformed file fails before any output
    try:
        grid = load_image(args.image)
    except OSError as e:
        print(f"Error: Could not read image {args.image}: {e}")
        sys.exit(1)

    print(f"Processing {args.image} ({grid.shape[1]}x{grid.shape[0]}) for a "
          f"{args.resolution}x{args.resolution} display, mode '{mode}'")
    try:
        programs = convert_image(grid, args.resolution, mode=mode, budget=ipp, display=args.display)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    save_programs(programs, args.output_dir)
    print("Done")
    print()
    print("Files named 0.txt, 1.txt etc. contain mlog instructions for each processor")


if __name__ == "__main__":
    main()
