"""
chordqueue - bar-synchronised chord and loop playback over MIDI.

Requests arrive from outside (a chat bot, a script, the bundled command
server) and are played in turn, locked to a shared MIDI clock:

- **Chord progressions** are one-shot. They are queued and each starts on the
  first bar boundary after the previous one has finished.
- **Loops** repeat a progression on every bar for as long as nothing else is
  waiting. A queued progression pauses the loop at the next bar; the loop
  picks up again once the progressions have played. Queuing another loop
  replaces it after its current pass.
- **Notes, controller messages, tempo and volume** act immediately.

The clock sends 24 ppqn MIDI timing pulses, so connected instruments and
DAWs follow the same tempo, and restarts the transport whenever the tempo
changes.

Minimal example:

    ```python
    import asyncio
    import chordqueue

    async def main ():
        player = chordqueue.Player()
        player.initialize("Virtual MIDI")
        player.set_tempo("100")
        player.on_now_playing(lambda kind, request: print(kind, request))

        loop = player.queue_loop("Am F C G")
        await player.send_chord("Dm(2) E7(2)")
        player.stop_loop()
        await loop

    asyncio.run(main())
    ```

Run ``python -m chordqueue [config.yaml]`` to start the command server.

Package-level exports: ``Player``, ``AliasStore``, ``Config``, ``load_config``.
"""

import chordqueue.aliases
import chordqueue.config
import chordqueue.player


Player = chordqueue.player.Player
AliasStore = chordqueue.aliases.AliasStore
Config = chordqueue.config.Config
load_config = chordqueue.config.load_config
