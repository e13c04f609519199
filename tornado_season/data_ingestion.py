"""
Data Ingestion Module for the Tornado Season Analysis
Downloads the SPC tornado-track shapefile archive and loads it into a table
"""

import zipfile
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
import requests
from loguru import logger

from .config import SeasonConfig


class TornadoTrackIngester:
    """
    Ingester for the Storm Prediction Center tornado-path shapefile

    Expected attribute columns (SPC "aspath" schema, among others):
    - yr: Year of occurrence
    - mo, dy: Month and day
    - date: Occurrence date as YYYY-MM-DD
    - mag: F/EF magnitude (-9 when unknown)
    """

    def __init__(
        self,
        archive_url: Optional[str] = None,
        data_dir: Optional[Path] = None,
        timeout: Optional[int] = None
    ):
        self.archive_url = archive_url or SeasonConfig.TRACKS_ARCHIVE_URL
        self.data_dir = Path(data_dir or SeasonConfig.DATA_DIR)
        self.timeout = timeout or SeasonConfig.DOWNLOAD_TIMEOUT

    @property
    def archive_path(self) -> Path:
        return self.data_dir / self.archive_url.rstrip('/').split('/')[-1]

    @property
    def extract_dir(self) -> Path:
        return self.data_dir / self.archive_path.stem

    def download(self, force: bool = False) -> Path:
        """
        Download the zipped shapefile to the data directory.

        Args:
            force: Download even if the archive is already present

        Returns:
            Path to the downloaded archive
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)

        if self.archive_path.exists() and not force:
            logger.info(f"Archive already present: {self.archive_path}")
            return self.archive_path

        logger.info(f"Downloading {self.archive_url}")

        response = requests.get(self.archive_url, timeout=self.timeout, stream=True)
        response.raise_for_status()

        # Only a complete download may appear under the archive name
        partial_path = self.archive_path.with_suffix(".zip.part")
        downloaded = 0
        try:
            with open(partial_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=SeasonConfig.DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        downloaded += len(chunk)
        except Exception:
            partial_path.unlink(missing_ok=True)
            logger.error(f"Download of {self.archive_url} interrupted after {downloaded} bytes")
            raise

        partial_path.replace(self.archive_path)

        logger.info(f"Downloaded {downloaded / (1024 * 1024):.1f} MB to {self.archive_path}")
        return self.archive_path

    def extract(self, archive_path: Optional[Path] = None) -> Path:
        """Extract the archive into a directory named after it."""
        archive_path = Path(archive_path or self.archive_path)

        with zipfile.ZipFile(archive_path) as zf:
            zf.extractall(self.extract_dir)

        logger.info(f"Extracted {archive_path.name} to {self.extract_dir}")
        return self.extract_dir

    def find_shapefile(self, directory: Optional[Path] = None) -> Path:
        """Locate the .shp file inside an extracted archive."""
        directory = Path(directory or self.extract_dir)
        shapefiles = sorted(directory.rglob("*.shp"))

        if not shapefiles:
            raise FileNotFoundError(f"No shapefile found under {directory}")

        if len(shapefiles) > 1:
            logger.warning(f"Found {len(shapefiles)} shapefiles, using {shapefiles[0].name}")

        return shapefiles[0]

    def acquire(self, force: bool = False) -> Path:
        """
        Make sure the extracted shapefile is available locally.

        Skips the network entirely when the shapefile was extracted by an
        earlier run, unless force is set.

        Returns:
            Path to the .shp file
        """
        if not force and self.extract_dir.exists():
            try:
                return self.find_shapefile()
            except FileNotFoundError:
                logger.warning(f"{self.extract_dir} holds no shapefile, downloading again")

        archive = self.download(force=force)
        self.extract(archive)
        return self.find_shapefile()

    def ingest(self, data_path: Path) -> pd.DataFrame:
        """
        Read a tornado-track shapefile into a plain DataFrame

        Args:
            data_path: Path to a .shp file or a directory holding one

        Returns:
            DataFrame with standardized columns and no geometry
        """
        data_path = Path(data_path)
        if data_path.is_dir():
            data_path = self.find_shapefile(data_path)

        gdf = gpd.read_file(data_path)
        logger.info(f"Read {len(gdf)} tornado tracks from {data_path.name}")

        df = pd.DataFrame(gdf.drop(columns=gdf.geometry.name))
        df = self._standardize_columns(df)

        is_valid, errors = self.validate(df)
        if not is_valid:
            raise ValueError(f"Invalid tornado track table: {'; '.join(errors)}")

        return self.preprocess(df)

    def _standardize_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        """Standardize column names to expected format"""
        column_mapping = {
            'year': 'yr',
            'magnitude': 'mag',
            'f_scale': 'mag',
        }

        df.columns = df.columns.str.lower().str.strip()

        for old_col, new_col in column_mapping.items():
            if old_col in df.columns and new_col not in df.columns:
                df = df.rename(columns={old_col: new_col})

        return df

    def validate(self, df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate tornado track data"""
        errors = []

        for col in SeasonConfig.TRACK_COLUMNS:
            if col not in df.columns:
                errors.append(f"Missing required column: {col}")

        for col in ['yr', 'mag']:
            if col in df.columns and not pd.api.types.is_numeric_dtype(df[col]):
                errors.append(f"{col} must be numeric")

        return len(errors) == 0, errors

    def preprocess(self, df: pd.DataFrame) -> pd.DataFrame:
        """Parse the date column"""
        df = df.copy()
        df['date'] = pd.to_datetime(df['date'])
        return df.reset_index(drop=True)


def load_tracks(path: Path) -> pd.DataFrame:
    """Read a tornado-track shapefile (or its directory) into a DataFrame."""
    return TornadoTrackIngester().ingest(path)


def simulate_tracks(
    years: Sequence[int],
    tornadoes_per_year: int = 1000,
    early_weight: float = 0.8,
    early_peak: float = 135.0,
    early_spread: float = 35.0,
    late_peak: float = 310.0,
    late_spread: float = 25.0,
    magnitude_probs: Sequence[float] = (0.45, 0.35, 0.13, 0.05, 0.015, 0.005),
    seed: int = 42
) -> pd.DataFrame:
    """
    Create a synthetic tornado track table with a two-surge season.

    Days of year are drawn from a mixture of a spring surge and a smaller
    late-autumn surge; the yearly total is Poisson around tornadoes_per_year.

    Args:
        years: Years to simulate
        tornadoes_per_year: Mean number of tornadoes per year
        early_weight: Share of tornadoes in the spring surge
        early_peak, early_spread: Spring surge day-of-year mean and sd
        late_peak, late_spread: Autumn surge day-of-year mean and sd
        magnitude_probs: Probabilities of magnitudes 0..5
        seed: Random seed

    Returns:
        DataFrame with yr, mo, dy, date and mag columns
    """
    rng = np.random.default_rng(seed)
    frames = []

    for year in years:
        n = rng.poisson(tornadoes_per_year)
        n_days = 366 if pd.Timestamp(year=year, month=1, day=1).is_leap_year else 365

        early = rng.random(n) < early_weight
        doy = np.where(
            early,
            rng.normal(early_peak, early_spread, n),
            rng.normal(late_peak, late_spread, n)
        )
        doy = np.clip(np.round(doy), 1, n_days).astype(int)

        dates = pd.Timestamp(year=year, month=1, day=1) + pd.to_timedelta(doy - 1, unit='D')
        frames.append(pd.DataFrame({
            'yr': year,
            'mo': dates.month,
            'dy': dates.day,
            'date': dates.strftime('%Y-%m-%d'),
            'mag': rng.choice(len(magnitude_probs), size=n, p=magnitude_probs),
        }))

    tracks = pd.concat(frames, ignore_index=True)
    tracks['date'] = pd.to_datetime(tracks['date'])
    return tracks
