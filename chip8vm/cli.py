"""Command line entry point: run a program headless or disassemble it."""

import argparse
import logging
import random
import sys
from typing import List, Optional

from .config import RunConfig
from .cpu import Chip8CPU
from .decoder import disassemble_program
from .errors import Chip8Error
from .runner import NullAudio, NullDisplay, Runner, load_rom_file

logger = logging.getLogger(__name__)


def _int_auto(text: str) -> int:
    return int(text, 0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chip8vm", description="CHIP-8 virtual machine")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log every executed instruction")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Execute a program without a display")
    run.add_argument("rom", help="Raw .ch8 program image")
    run.add_argument("--cycles", type=int, default=None,
                     help="Stop after this many cycles")
    run.add_argument("--delay", type=float, default=None,
                     help="Milliseconds to sleep between cycles")
    run.add_argument("--seed", type=int, default=None, help="Seed for RND")
    run.add_argument("--config", help="JSON run configuration")
    run.add_argument("--bnnn-pushes-stack", action="store_true",
                     help="BNNN pushes PC before jumping")
    run.add_argument("--no-load-increment", action="store_true",
                     help="FX65 leaves I unchanged")

    dis = sub.add_parser("disasm", help="Print a program's disassembly")
    dis.add_argument("rom", help="Raw .ch8 program image")
    dis.add_argument("--start", type=_int_auto, default=0x200,
                     help="Address of the first byte (default 0x200)")
    return parser


def _run_config(args: argparse.Namespace) -> RunConfig:
    config = RunConfig.load(args.config) if args.config else RunConfig()
    if args.cycles is not None:
        config.max_cycles = args.cycles
    if args.delay is not None:
        config.cycle_delay_ms = args.delay
    if args.seed is not None:
        config.seed = args.seed
    if args.bnnn_pushes_stack:
        config.quirks.jump_pushes_stack = True
    if args.no_load_increment:
        config.quirks.load_increments_index = False
    return config


def cmd_run(args: argparse.Namespace) -> int:
    config = _run_config(args)
    rng = random.Random(config.seed) if config.seed is not None else None
    cpu = Chip8CPU(quirks=config.quirks, rng=rng)
    cpu.load(load_rom_file(args.rom))

    display = NullDisplay()
    audio = NullAudio()
    runner = Runner(cpu, display=display, audio=audio, config=config)
    cycles = runner.run()

    s = cpu.state
    logger.info("%d cycles, %d frames, %d tones", cycles, display.frames, audio.tones)
    logger.info("PC: $%03X  I: $%03X  SP: %d  DT: %02X  ST: %02X",
                s.PC, s.I, s.SP, s.delay_timer, s.sound_timer)
    logger.info("V0-V7: %s", " ".join(f"{v:02X}" for v in s.V[:8]))
    logger.info("V8-VF: %s", " ".join(f"{v:02X}" for v in s.V[8:]))
    return 0


def cmd_disasm(args: argparse.Namespace) -> int:
    for line in disassemble_program(load_rom_file(args.rom), start=args.start):
        print(line)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="[%(levelname)s] %(name)s: %(message)s")
    try:
        if args.command == "run":
            return cmd_run(args)
        return cmd_disasm(args)
    except Chip8Error as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        logger.error("Failed to load ROM: %s", e)
        return 1
    except (ValueError, TypeError) as e:
        logger.error("Invalid configuration: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
