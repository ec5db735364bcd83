# parkedge

The core of an edge parking sensor. It is a library.

- It tracks whether each parking spot is occupied and how long the vehicle has stayed.
- It keeps a rolling buffer of recent camera frames. When a spot expires, it can fetch the frame taken at that moment.
- It uploads enter, exit and overstay events to a central server over HTTP.

## Modules

### `parkedge.types`

The shared vocabulary:

- The enumerations `ParkingSpotStatus`, `ParkingSpotPolicy`, `HttpRequestType` and `ClassifierType`. `ClassifierType` has `label` and `from_label`.
- The records `ServerDestination` and `ParkingParams`.
- `Rect`, a frozen rectangle with `is_empty()` and `fits_within(width, height)`.
- The folder constants `SYSTEM_FOLDER_CORE` and `SYSTEM_FOLDER_LOG`, and the file constant `SYSTEM_FILE_PARKINGSPOTS`.

### `parkedge.utils`

Helpers:

- `to_bool` is true only for `"true"`, in any case.
- `bool_to_string` turns a boolean into text.
- `cvt_to_fourcc` turns a numeric codec code into its four characters.
- `compute_image_ratio` gives the longer side over the shorter side. It gives `0.0` for sizes that are not valid.
- Timestamp formats:
  - `to_iso_string` writes `YYYYMMDDTHHMMSS`.
  - `from_iso_string` reads that format back.
  - `to_simple_string` writes `YYYY-Mon-DD HH:MM:SS`.
- `RoiSelection` turns `MouseEvent` clicks into a rectangle. Each call to `handle(event, x, y)` returns the corners to preview while drawing. The result is in `rect`.

### `parkedge.messages`

The messages sent to the server. Both have `to_dict()`, which gives the JSON body, and `to_string()`.

- `ParkingUpdateMessage` carries an enter, exit or overstay event.
  - `to_dict()` includes the frames as base64 PNG.
  - `save(folder)` writes the frame under a file name that encodes the time, request code, plate and spot id.
  - `load(path)` rebuilds the message from such a file.
  - Both raise `MessageError` on failure.
- `ServerSyncMessage` carries the image size and the spot layout.
- `encode_image` and `decode_image` convert between image arrays and base64 PNG text.

### `parkedge.bootstrap`

- `system_check(core_folder, log_folder)` creates the system folders. It returns `False` if a folder cannot be made.
- `default_destinations()` gives the standard path and method for each request type.
- `write_destinations_file(path, server_address)` and `load_destinations_file(path)` write and read the XML file of server settings.

### `parkedge.frame_buffer`

- `FrameBuffer` keeps the latest `max_frames` frames. It also keeps one frame per second over `holding_seconds`.
  - `push(frame, now)` stores a frame.
  - `read()` returns a copy of the latest frame. It raises `LookupError` when the buffer is empty.
  - `latest()` returns `(time, frame)`, or `None` when the buffer is empty.
  - `read_at(moment)` looks up to ten seconds ahead of the moment for an indexed frame.
  - `is_ready()` tells whether a frame is in both the queue and the index.
- `FrameReader(source, buffer, from_video, clock)` fills a buffer from any object with a `read()` method. It reads in a background thread.
  - `start()` starts the thread.
  - `close()` stops the thread. It also calls the source's `release()` if the source has one.
  - It can be used as a context manager.

### `parkedge.parking_spot`

`ParkingSpot` holds the state of one spot.

- `observe(occupied)` debounces detections using the shared thresholds. Set them with `ParkingSpot.set_positive_threshold` and `set_negative_threshold`.
- `enter(image, roi, entry_time, plate)`:
  - queues an enter message with the full frame and the cropped frame;
  - starts an overstay timer of `time_limit` seconds.
- When the timer fires, `overstayed` queues an overstay message. The message carries the frame of that moment, taken from the spot's `FrameBuffer` if the spot has one.
- `exit(...)` queues an exit message and stops the timer.
- `configure(...)` changes the name, time limit, ROI and policy. It returns `False` while the spot is occupied and the timer is still running.
- `reset()` stops the timer and clears the status.
- `close()` stops the timer.

Reservations:

- When a spot is given a `ReservationStore`, a plate with a reservation claims its earliest unused `Reservation` on entry.
- The timer then runs until the reservation ends, as worked out by `reservation_minutes`.
- If the reservation has already ended, the timer runs for ten minutes.

### `parkedge.network`

`ServerNetworkHandler(message_queue, settings_path, sensor_id, time_zone)` reads the XML server settings. These are the address, the secure mode and the destinations. It reads them when it is created.

- `prepare_upload(message)`:
  - picks the destination from the message's `httpRequest`;
  - adds `timeZone` to the body;
  - renders the body as JSON.
- `upload(message)` sends the message with `send_http` on port 20180 and returns the response body.
- `send_secure_http` sends the request over TLS without checking the certificate. It returns the first reply line.
- Failures raise `UploadError`.
- `parse_status_line` splits an HTTP status line into its parts.
- Used as a context manager:
  - On entry, it starts a thread that takes messages off the queue and uploads them. A failed upload is retried every `retry_seconds`.
  - On exit, it stops the thread and writes the settings back.

## A short tour

```python
import queue
from datetime import datetime

import numpy as np

from parkedge.bootstrap import write_destinations_file
from parkedge.network import ServerNetworkHandler
from parkedge.parking_spot import ParkingSpot
from parkedge.types import ParkingSpotPolicy, Rect

messages = queue.Queue()
spot = ParkingSpot(1, "A-01", 3600, Rect(0, 0, 64, 48), ParkingSpotPolicy.TIMED,
                   message_queue=messages)

frame = np.zeros((480, 640, 3), dtype=np.uint8)
spot.enter(frame, Rect(10, 10, 64, 48), datetime.now(), "TEST-0000")
assert spot.is_occupied()

write_destinations_file("server.xml", server_address="127.0.0.1")
handler = ServerNetworkHandler(messages, "server.xml", sensor_id="sensor-0001")
destination, body = handler.prepare_upload(messages.get())
print(destination.http_method, destination.target_path)  # POST /parkstatus/enter
spot.close()
```

## What it does not do

- It has no command to run.
- It does not read the sensor's INI configuration file.
- It does not serve a management socket for remote tools.
- It does not detect vehicles or read number plates.
- It does not open cameras itself. `FrameReader` only reads from a source object that you supply.
- Reservations live in memory in a `ReservationStore`. No database is used.

## Installing

Install from a checkout of the source with your usual installer. Add the `test` extra to get pytest as well.

## Running the tests

The tests live in `tests/` and run with pytest.