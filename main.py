# macOS packaging support
import sys
from multiprocessing import freeze_support  # noqa
freeze_support()  # noqa

import multiprocessing
multiprocessing.set_start_method("spawn", force=True)

import asyncio
import json
import logging

from autopaint.clustering import as_color_count, image_histogram
from autopaint.color import estimate_td_from_color
from autopaint.config import BACKLIT_TD_SCALE, FIRST_LAYER_HEIGHT, FRONTLIT_TD_SCALE, LAYER_HEIGHT
from autopaint.errors import AutoPaintError
from autopaint.models import Filament
from autopaint.optimizer import OptimizerOptions
from autopaint.pipeline import describe_result, to_slice_heights
from autopaint.worker import AutoPaintRequest, AutoPaintWorker

USAGE = """usage: python main.py -p project.json [-i image.png] [--enhanced] [--repeats]
                      [--algorithm A] [--seed N] [--max-height H] [--frontlit] [--verbose]"""


def arg_value(*names, default=None):
    for name in names:
        if name in sys.argv:
            index = sys.argv.index(name)
            if index + 1 >= len(sys.argv):
                raise SystemExit(f"Missing value for {name}\n{USAGE}")
            return sys.argv[index + 1]
    return default


def load_filaments(entries):
    filaments = []
    for entry in entries:
        data = entry.get('copied_data', entry)
        if not any(k in data for k in ('td', 'td_value', 'transmission_distance')):
            # Prefill like the filament editor does
            entry = {**entry, 'td': estimate_td_from_color(data.get('color', '#000000'))}
            logging.info("Estimated TD %s for filament %s", entry['td'], entry.get('id'))
        filaments.append(Filament.from_dict(entry))
    return filaments


def load_request(project_path, image_path=None):
    with open(project_path, 'r') as f:
        project = json.load(f)

    if image_path:
        from PIL import Image
        with Image.open(image_path) as img:
            swatches = image_histogram(img)
    else:
        swatches = [as_color_count(s) for s in project.get('swatches', [])]

    max_height = arg_value('--max-height', default=project.get('max_height'))
    options = OptimizerOptions(
        algorithm=arg_value('--algorithm', default='auto'),
        seed=int(arg_value('--seed')) if arg_value('--seed') is not None else None,
    )

    return AutoPaintRequest(
        filaments=tuple(load_filaments(project.get('filaments', []))),
        swatches=tuple(swatches),
        layer_height=float(project.get('layer_height', LAYER_HEIGHT)),
        first_layer_height=float(project.get('first_layer_height', FIRST_LAYER_HEIGHT)),
        max_height=float(max_height) if max_height is not None else None,
        enhanced_color_match='--enhanced' in sys.argv,
        allow_repeated_swaps='--repeats' in sys.argv,
        optimizer_options=options,
        td_scale=FRONTLIT_TD_SCALE if '--frontlit' in sys.argv else BACKLIT_TD_SCALE,
    )


def main():
    logging.basicConfig(
        level=logging.DEBUG if '--verbose' in sys.argv else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    project_path = arg_value('-p', '--project')
    if not project_path:
        print(USAGE)
        return 2

    try:
        request = load_request(project_path, arg_value('-i', '--image'))
    except (OSError, ValueError, KeyError) as e:
        print(f"Error loading project {project_path}: {str(e)}")
        return 1

    with AutoPaintWorker() as worker:
        try:
            result = asyncio.run(worker.compute(request))
        except AutoPaintError as e:
            print(f"Auto-paint failed: {e}")
            return 1

    print(describe_result(result))
    slices = to_slice_heights(result, request.layer_height, request.first_layer_height)
    print(f"Layers: {len(slices.color_slice_heights)}" + (" (truncated)" if slices.truncated else ""))
    return 0


if __name__ == '__main__':
    sys.exit(main())
