"""Tests for RGB stitching and alpha reconstruction."""

import numpy as np

from png_upscale.stitching import new_canvas, reconstruct_alpha, stitch_tile
from png_upscale.tiling import Region, TileDescriptor, compute_tile_grid, extract_chunk

from conftest import doubled, random_image


def make_tile(input_region, output_region, inner_offset):
    return TileDescriptor(
        row=0,
        col=0,
        input_region=input_region,
        output_region=output_region,
        inner_offset=inner_offset,
    )


class TestNewCanvas:
    """Test canvas allocation."""

    def test_doubled_shape(self):
        canvas = new_canvas(width=30, height=20)
        assert canvas.shape == (40, 60, 4)
        assert canvas.dtype == np.uint8
        assert not np.any(canvas)


class TestStitchTile:
    """Test cropping and placement of inference results."""

    def test_crop_removes_padding(self):
        # Tile core x in [4, 8), y in [2, 6) read with 2px padding
        tile = make_tile(Region(2, 0, 8, 8), Region(8, 4, 8, 8), (2, 2))
        result = np.arange(16 * 16 * 4, dtype=np.uint32).reshape(16, 16, 4).astype(np.uint8)
        canvas = new_canvas(12, 8)

        stitch_tile(canvas, result, tile)

        assert np.array_equal(canvas[4:12, 8:16, :3], result[4:12, 4:12, :3])

    def test_only_rgb_written(self):
        tile = make_tile(Region(0, 0, 4, 4), Region(0, 0, 8, 8), (0, 0))
        result = np.full((8, 8, 4), 200, dtype=np.uint8)
        canvas = new_canvas(4, 4)
        canvas[..., 3] = 7

        stitch_tile(canvas, result, tile)

        assert np.all(canvas[..., :3] == 200)
        assert np.all(canvas[..., 3] == 7)

    def test_outside_tile_untouched(self):
        tile = make_tile(Region(0, 0, 4, 4), Region(0, 0, 8, 8), (0, 0))
        canvas = new_canvas(8, 8)
        stitch_tile(canvas, np.full((8, 8, 4), 9, dtype=np.uint8), tile)

        assert np.all(canvas[:8, :8, :3] == 9)
        assert not np.any(canvas[8:, :, :])
        assert not np.any(canvas[:, 8:, :])


class TestReconstructAlpha:
    """Alpha must be exact 2x2 nearest-neighbour duplication of the source."""

    def test_alpha_law_single_tile(self):
        image = random_image(6, 5)
        tile = compute_tile_grid(5, 6)[0]
        chunk = extract_chunk(image, tile.input_region)
        canvas = new_canvas(5, 6)

        reconstruct_alpha(canvas, chunk, tile)

        for y in range(12):
            for x in range(10):
                assert canvas[y, x, 3] == image[y // 2, x // 2, 3]

    def test_alpha_uses_inner_offset(self):
        image = random_image(30, 30, seed=3)
        tiles = compute_tile_grid(30, 30, chunk_size=10, pad_size=3)
        canvas = new_canvas(30, 30)
        for tile in tiles:
            reconstruct_alpha(canvas, extract_chunk(image, tile.input_region), tile)

        assert np.array_equal(canvas[..., 3], doubled(image)[..., 3])

    def test_rgb_untouched(self):
        image = random_image(4, 4)
        tile = compute_tile_grid(4, 4)[0]
        canvas = new_canvas(4, 4)
        canvas[..., :3] = 42

        reconstruct_alpha(canvas, extract_chunk(image, tile.input_region), tile)

        assert np.all(canvas[..., :3] == 42)
