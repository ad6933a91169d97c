"""SVC2004 dataset reader and downloader.

Task1 traces are finger-style (x, y, timestamp, button), Task2 traces add
azimuth, altitude and pressure. Files are named ``U<user>S<sample>.txt``;
samples 1-20 are genuine, 21-40 skilled forgeries.
"""

import logging
import os
import re
import zipfile

import requests

from sigverify.signature import Database, InputDevice, Origin, Signature

logger = logging.getLogger(__name__)

SVC2004_URL = "http://www.cse.ust.hk/svc2004/Task{task}.zip"
SVC2004_GENUINE_SAMPLES = 20

_FILE_PATTERN = re.compile(r'U(\d+)S(\d+)\.txt', re.IGNORECASE)


def download_svc2004(task, target_dir=None):
    """Fetch and extract one SVC2004 task unless `target_dir` already exists."""
    url = SVC2004_URL.format(task=task)
    extract_dir = target_dir or f"svc2004_task{task}"
    if os.path.exists(extract_dir):
        logger.info("Directory %s already exists", extract_dir)
        return extract_dir
    zip_filename = f"{extract_dir}.zip"

    logger.info("Downloading SVC2004 Task%s data from %s", task, url)
    response = requests.get(url, stream=True, timeout=60)
    response.raise_for_status()
    total_size = int(response.headers.get('content-length', 0))
    downloaded = 0
    with open(zip_filename, "wb") as f:
        for chunk in response.iter_content(chunk_size=8192):
            f.write(chunk)
            downloaded += len(chunk)
    if total_size and downloaded != total_size:
        logger.warning("Downloaded %d of %d bytes", downloaded, total_size)

    with zipfile.ZipFile(zip_filename, "r") as zip_ref:
        zip_ref.extractall(extract_dir)
    logger.info("Data for Task%s extracted to %s", task, extract_dir)
    return extract_dir


def read_svc2004_file(path, signature_id, signer_id, origin, with_pressure):
    """Parse one trace; the first line holds the point count and is skipped."""
    min_columns = 7 if with_pressure else 4
    x, y, t, pressure = [], [], [], []
    with open(path, 'r') as f:
        f.readline()
        for line in f:
            cols = line.split()
            if len(cols) < min_columns:
                continue
            x.append(float(cols[0]))
            y.append(float(cols[1]))
            t.append(int(cols[2]))
            if with_pressure:
                pressure.append(float(cols[6]))
    return Signature(
        id=signature_id,
        signer_id=signer_id,
        input_device=InputDevice.STYLUS if with_pressure else InputDevice.FINGER,
        x=x,
        y=y,
        t=t,
        pressure=pressure if with_pressure else None,
        origin=origin,
    )


def _load_svc2004(directory, with_pressure):
    database = Database()
    for root, _, files in os.walk(directory):
        for fname in sorted(files):
            m = _FILE_PATTERN.match(fname)
            if not m:
                continue
            user_id, sig_id = int(m.group(1)), int(m.group(2))
            origin = Origin.GENUINE if sig_id <= SVC2004_GENUINE_SAMPLES else Origin.FORGED
            try:
                signature = read_svc2004_file(
                    os.path.join(root, fname), os.path.splitext(fname)[0], f"U{user_id}", origin, with_pressure,
                )
            except ValueError as e:
                logger.warning("Skipping %s: %s", fname, e)
                continue
            database.add(signature)
    logger.info("Loaded %d signatures of %d signers from %s", len(database), len(database.signers()), directory)
    return database


def load_svc2004_task1(directory):
    return _load_svc2004(directory, with_pressure=False)


def load_svc2004_task2(directory):
    return _load_svc2004(directory, with_pressure=True)


LOADERS = {
    "svc2004-task1": (1, load_svc2004_task1),
    "svc2004-task2": (2, load_svc2004_task2),
}
