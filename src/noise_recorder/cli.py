"""CLI: monitor the microphone (or replay a WAV file) and record loud events."""

import argparse
import logging
import sys
from pathlib import Path

from noise_recorder.audio import AudioCollector, AudioConfig
from noise_recorder.pipeline import CaptureSession, MonitorConfig, TickDriver, TickReport
from noise_recorder.recorder import WavFileSink
from noise_recorder.telemetry import JsonLinesTelemetrySink, TelemetryPublisher, log_telemetry

logger = logging.getLogger("noise_recorder")


def build_parser() -> argparse.ArgumentParser:
    defaults = MonitorConfig()
    parser = argparse.ArgumentParser(
        description="Record audio while the room is louder than its adaptive noise floor (mono)"
    )
    parser.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=Path("recordings"),
        help="Directory for recorded WAV files (default: recordings)",
    )
    parser.add_argument(
        "--device",
        type=int,
        default=None,
        help="Input device index (list with --list-devices)",
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available audio input devices and exit",
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=None,
        help="Replay a mono WAV file through the detector instead of the microphone",
    )
    parser.add_argument("--sample-rate", type=int, default=AudioConfig().sample_rate)
    parser.add_argument("--ring-buffer-sec", type=float, default=AudioConfig().ring_buffer_sec)
    parser.add_argument("--tick-interval", type=float, default=defaults.tick_interval_sec)
    parser.add_argument(
        "--threshold-db",
        type=float,
        default=defaults.default_threshold_db,
        help="Detection threshold used until the noise history has filled (default: %(default)s)",
    )
    parser.add_argument("--margin-db", type=float, default=defaults.margin_db)
    parser.add_argument("--history-size", type=int, default=defaults.history_size)
    parser.add_argument("--pre-roll-sec", type=float, default=defaults.pre_roll_sec)
    parser.add_argument("--debounce-sec", type=float, default=defaults.pre_roll_debounce_sec)
    parser.add_argument("--hold-sec", type=float, default=defaults.hold_sec)
    parser.add_argument(
        "--telemetry-interval",
        type=float,
        default=5.0,
        help="Seconds between status publishes (default: 5)",
    )
    parser.add_argument(
        "--telemetry-file",
        type=Path,
        default=None,
        help="Append status as JSON lines to this file instead of logging it",
    )
    parser.add_argument(
        "--print-levels",
        action="store_true",
        help="Log the measured level on every tick",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser


def _report_printer(enabled: bool):
    def on_report(report: TickReport) -> None:
        if enabled:
            logger.info(
                "Level %.2f dB (floor %.2f, threshold %.2f) %s",
                report.current_db,
                report.noise_floor,
                report.threshold,
                report.phase.value,
            )

    return on_report


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_devices:
        try:
            print(AudioCollector.list_devices())
        except ImportError as e:
            print(e, file=sys.stderr)
            sys.exit(1)
        return

    try:
        audio_config = AudioConfig(
            sample_rate=args.sample_rate,
            ring_buffer_sec=args.ring_buffer_sec,
        )
        collector = AudioCollector(audio_config)
        replay = None
        if args.input is not None:
            sample_rate, replay = collector.read_wav(str(args.input))
            audio_config = AudioConfig(sample_rate=sample_rate, ring_buffer_sec=args.ring_buffer_sec)
            collector = AudioCollector(audio_config)
        config = MonitorConfig(
            tick_interval_sec=args.tick_interval,
            loudness_window_sec=args.tick_interval,
            pre_roll_sec=args.pre_roll_sec,
            history_size=args.history_size,
            margin_db=args.margin_db,
            default_threshold_db=args.threshold_db,
            pre_roll_debounce_sec=args.debounce_sec,
            hold_sec=args.hold_sec,
        )
        session = CaptureSession(WavFileSink(args.output_dir), audio_config, config)
        telemetry_sink = JsonLinesTelemetrySink(args.telemetry_file) if args.telemetry_file else log_telemetry
        publisher = TelemetryPublisher(session.snapshot, telemetry_sink, args.telemetry_interval)
    except (ValueError, OSError) as e:
        parser.error(str(e))

    driver = TickDriver(session, on_report=_report_printer(args.print_levels))

    with session:
        if replay is not None:
            logger.info("Replaying %s (%.1fs at %d Hz)", args.input, len(replay) / sample_rate, sample_rate)
            chunk = audio_config.seconds_to_samples(config.tick_interval_sec)
            driver.run_offline(collector.iter_chunks(replay, chunk))
            publisher.publish_now()
        else:
            collector.log_default_device(args.device)
            logger.info("Monitoring; recordings go to %s. Press Ctrl+C to stop.", args.output_dir)
            publisher.start()
            stream = collector.open_stream(session.on_samples, device=args.device)
            try:
                driver.run()
            except KeyboardInterrupt:
                logger.info("Stopping")
            finally:
                driver.stop()
                publisher.stop()
                stream.stop()
                stream.close()

    logger.info("Done: %d event(s) recorded", session.machine.event_count)


if __name__ == "__main__":
    main()
