#!/usr/bin/env python3
"""
Module to replay mlog draw programs and render a preview image.

Only the instructions produced by convert_mlog are understood:
- draw color r g b a 0 0
- draw rect x y w h 0 0
- drawflush <display>

Draw instructions are buffered and only reach the display on drawflush,
like a real logic display. Programs are replayed in order onto the same
canvas.

Usage:
    python render_mlog.py 0.txt 1.txt --small -o preview.png
"""
import argparse
import numpy as np
from PIL import Image

from convert_mlog import LARGE_DISPLAY_RESOLUTION, SMALL_DISPLAY_RESOLUTION


def parse_instruction(line):
    """Parse one instruction line.

    Returns: ('color', (r, g, b, a)), ('rect', x, y, w, h) or ('flush', display)
    """
    parts = line.split()
    if len(parts) == 8 and parts[0] == 'draw' and parts[1] == 'color':
        rgba = tuple(int(v) for v in parts[2:6])
        if not all(0 <= v <= 255 for v in rgba):
            raise ValueError(f"Color channel out of range: {line!r}")
        return ('color', rgba)
    if len(parts) == 8 and parts[0] == 'draw' and parts[1] == 'rect':
        x, y, w, h = (int(v) for v in parts[2:6])
        return ('rect', x, y, w, h)
    if len(parts) == 2 and parts[0] == 'drawflush':
        return ('flush', parts[1])
    raise ValueError(f"Unsupported instruction: {line!r}")


def render_programs(programs, resolution, background=(0, 0, 0, 255), progress_callback=None):
    """
    Replay program texts onto a square canvas.

    Args:
        programs: list of program texts, in processor order
        resolution: display width and height
        background: RGBA the display starts with
        progress_callback: Optional callback(current, total, message)

    Returns: uint8 array of shape (resolution, resolution, 4) in display
        coordinates (row 0 is the bottom of the display)
    """
    canvas = np.zeros((resolution, resolution, 4), dtype=np.uint8)
    canvas[:, :] = background

    for program_idx, text in enumerate(programs):
        color = None
        pending = []

        for line_no, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                instruction = parse_instruction(line)
            except ValueError as e:
                raise ValueError(f"Program {program_idx}, line {line_no}: {e}") from e

            kind = instruction[0]
            if kind == 'color':
                color = instruction[1]
            elif kind == 'rect':
                if color is None:
                    raise ValueError(f"Program {program_idx}, line {line_no}: draw rect before draw color")
                pending.append((color, instruction[1:]))
            else:
                for rgba, (x, y, w, h) in pending:
                    # Clip to the display; numpy slicing handles the far edges
                    canvas[max(y, 0):max(y + h, 0), max(x, 0):max(x + w, 0)] = rgba
                pending = []

        if pending:
            print(f"Warning: Program {program_idx} ends with {len(pending)} unflushed draw(s), dropping them")

        if progress_callback:
            progress_callback(program_idx + 1, len(programs), f"Rendered program {program_idx}")

    return canvas


def save_preview(canvas, output_path):
    """Save a rendered canvas as an image, top row first."""
    Image.fromarray(np.flipud(canvas), 'RGBA').save(output_path)


def main(argv=None):
    parser = argparse.ArgumentParser(prog='render-mlog', description="Render mlog draw programs to a preview image")
    parser.add_argument('programs', nargs='+', help='Program files (0.txt, 1.txt, ...) in processor order')
    parser.add_argument('-o', '--output', required=True, help='Output image path (.png)')
    display_size = parser.add_mutually_exclusive_group(required=True)
    display_size.add_argument('-s', '--small', dest='resolution', action='store_const', const=SMALL_DISPLAY_RESOLUTION,
                              help=f'Small Logic Display ({SMALL_DISPLAY_RESOLUTION}x{SMALL_DISPLAY_RESOLUTION})')
    display_size.add_argument('-l', '--large', dest='resolution', action='store_const', const=LARGE_DISPLAY_RESOLUTION,
                              help=f'Large Logic Display ({LARGE_DISPLAY_RESOLUTION}x{LARGE_DISPLAY_RESOLUTION})')
    display_size.add_argument('-r', '--resolution', dest='resolution', type=int, help='Custom square display resolution')
    args = parser.parse_args(argv)

    programs = []
    for path in args.programs:
        with open(path, encoding='utf-8') as f:
            programs.append(f.read())

    canvas = render_programs(programs, args.resolution)
    save_preview(canvas, args.output)
    print(f"Saved {args.output}")


if __name__ == "__main__":
    main()
