"""Print the MD5 digest of files or standard input."""
import argparse
import logging
import sys

from md5 import md5_hexdigest
from padded_reader import DEFAULT_CHUNK_SIZE, SourceReadError

PROG = 'stream-md5'


def build_parser():
    parser = argparse.ArgumentParser(prog=PROG, description=__doc__)
    parser.add_argument('files', nargs='*', metavar='FILE',
                        help='files to hash; with no FILE, or when FILE is -, read standard input')
    parser.add_argument('--chunk-size', type=int, default=DEFAULT_CHUNK_SIZE,
                        help='read size in bytes (default: %(default)s)')
    parser.add_argument('-v', '--verbose', action='store_true', help='enable debug logging')
    return parser


def hash_path(path, chunk_size=DEFAULT_CHUNK_SIZE):
    if path == '-':
        return md5_hexdigest(sys.stdin.buffer, chunk_size)
    with open(path, 'rb') as f:
        return md5_hexdigest(f, chunk_size)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    if args.chunk_size <= 0:
        print(f'{PROG}: --chunk-size must be positive', file=sys.stderr)
        return 2

    status = 0
    for path in args.files or ['-']:
        try:
            digest = hash_path(path, args.chunk_size)
        except (OSError, SourceReadError) as err:
            print(f'{PROG}: {path}: {err}', file=sys.stderr)
            status = 1
            continue
        print(f'{digest}  {path}')
    return status


if __name__ == '__main__':
    sys.exit(main())
