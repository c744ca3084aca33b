"""
galaxy_gui.py
=============
Tkinter parameter panel for the spiral-galaxy generator.

Layout
------
Left panel   – galaxy parameters (structure, scatter, colours, appearance,
               rotation, seed) – scrollable, collapsible sections.
Centre panel – embedded matplotlib 3-D view of the current point cloud,
               with scroll-wheel zoom and the standard navigation toolbar.

Behaviour
---------
A regeneration runs only when an edit is *finished* (slider released,
Return / focus-out in a spinbox, colour chosen), never on every intermediate
slider value.  Point size and the rotation controls are read directly by the
display surface and render loop and never trigger a regeneration.

Generation runs on a worker thread; the finished cloud is swapped into the
display surface on the Tk main thread, so only one cloud is ever attached.
Edits that arrive while a run is in flight are queued and the latest one
runs next.

Usage
-----
    python galaxy_gui.py

Dependencies
------------
Same as the core generator (numpy, pandas, matplotlib) plus tkinter, which is
bundled with the standard Python installer.  On Ubuntu/Debian:
    sudo apt-get install python3-tk
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

import tkinter as tk
from tkinter import ttk, colorchooser, filedialog, messagebox

import matplotlib
matplotlib.use("TkAgg")
import matplotlib.pyplot as plt
from matplotlib.backends.backend_tkagg import FigureCanvasTkAgg, NavigationToolbar2Tk

from spiralgen import (
    GalaxyGenerator,
    GalaxyParams,
    InvalidParameter,
    PointCloud,
    RegenerationQueue,
)
from plot_galaxy import make_surface


# Render-loop period (ms).  Redrawing 10⁵ points in matplotlib is slow, so
# this is deliberately coarser than a 60 Hz loop.
TICK_MS = 50


# ---------------------------------------------------------------------------
# Reusable compound widgets
# ---------------------------------------------------------------------------

class SliderEntry(ttk.Frame):
    """Linked horizontal scale + spinbox for a numeric parameter.

    *on_finish* fires when an edit is complete: the scale is released, the
    spinbox arrows are clicked, or Return / focus-out in the spinbox.
    """

    def __init__(
        self,
        parent,
        label: str,
        var: tk.Variable,
        lo: float,
        hi: float,
        step: float = 1.0,
        on_finish: Optional[Callable[[], None]] = None,
        label_width: int = 24,
        spin_width: int = 9,
        **kw,
    ):
        super().__init__(parent, **kw)
        self._var       = var
        self._step      = step
        self._lo        = lo
        self._hi        = hi
        self._on_finish = on_finish
        self._busy      = False

        ttk.Label(self, text=label, width=label_width, anchor="w").grid(
            row=0, column=0, sticky="w", padx=(4, 2), pady=1,
        )
        self._scale = ttk.Scale(
            self, orient="horizontal", length=130,
            from_=lo, to=hi, variable=var,
            command=self._on_scale,
        )
        self._scale.grid(row=0, column=1, padx=4)
        self._scale.bind("<ButtonRelease-1>", self._finish)
        self._spin = ttk.Spinbox(
            self, from_=lo, to=hi, increment=step,
            textvariable=var, width=spin_width,
            command=self._finish,
        )
        self._spin.grid(row=0, column=2, padx=(2, 4))
        self._spin.bind("<Return>",   self._clamp_and_finish)
        self._spin.bind("<FocusOut>", self._clamp_and_finish)

    def _on_scale(self, _val: str) -> None:
        if self._busy:
            return
        try:
            raw = float(_val)
        except ValueError:
            return
        snapped = round(raw / self._step) * self._step
        snapped = round(snapped, 10)
        if abs(raw - snapped) > 1e-9:
            self._busy = True
            self._var.set(snapped)
            self._busy = False

    def _clamp(self) -> None:
        try:
            val = float(self._spin.get())
        except ValueError:
            val = self._lo
        val = max(self._lo, min(self._hi, val))
        self._var.set(round(round(val / self._step) * self._step, 10))

    def _clamp_and_finish(self, _evt=None) -> None:
        self._clamp()
        self._finish()

    def _finish(self, _evt=None) -> None:
        if self._on_finish is not None:
            self._on_finish()


# ---------------------------------------------------------------------------

class ColorEntry(ttk.Frame):
    """Colour swatch + hex entry + colour-picker button."""

    def __init__(self, parent, label: str, var: tk.StringVar,
                 on_finish: Optional[Callable[[], None]] = None,
                 label_width: int = 24, **kw):
        super().__init__(parent, **kw)
        self._var       = var
        self._on_finish = on_finish

        ttk.Label(self, text=label, width=label_width, anchor="w").grid(
            row=0, column=0, sticky="w", padx=(4, 2), pady=1,
        )
        self._swatch = tk.Label(self, width=3, relief="sunken", cursor="hand2")
        self._swatch.grid(row=0, column=1, padx=(2, 2))
        self._swatch.bind("<Button-1>", self._open_picker)

        self._entry = ttk.Entry(self, textvariable=var, width=10)
        self._entry.grid(row=0, column=2, padx=2)
        self._entry.bind("<Return>",   self._commit)
        self._entry.bind("<FocusOut>", self._commit)

        ttk.Button(self, text="Pick…", width=6,
                   command=self._open_picker).grid(row=0, column=3, padx=(2, 4))

        var.trace_add("write", self._refresh_swatch)
        self._refresh_swatch()

    def _refresh_swatch(self, *_) -> None:
        val = self._var.get().strip()
        try:
            self._swatch.configure(bg=val)
        except tk.TclError:
            self._swatch.configure(bg="#888888")

    def _commit(self, _evt=None) -> None:
        self._refresh_swatch()
        if self._on_finish is not None:
            self._on_finish()

    def _open_picker(self, _evt=None) -> None:
        current = self._var.get()
        try:
            _rgb, hexval = colorchooser.askcolor(
                color=current, title="Choose colour", parent=self)
        except tk.TclError:
            return
        if hexval:
            self._var.set(hexval.lower())
            self._commit()


# ---------------------------------------------------------------------------

class Section(ttk.Frame):
    """Collapsible parameter section with a toggle-button header."""

    def __init__(self, parent, title: str, start_open: bool = True, **kw):
        super().__init__(parent, **kw)
        self._open  = start_open
        self._title = title

        self._btn = ttk.Button(self, text=f"{'▼' if start_open else '▶'}  {title}",
                               command=self._toggle)
        self._btn.pack(fill="x", padx=2, pady=(4, 0))
        ttk.Separator(self, orient="horizontal").pack(fill="x", padx=2)

        self._inner = ttk.Frame(self, padding=(2, 2, 2, 6))
        if start_open:
            self._inner.pack(fill="x", expand=True)

    @property
    def inner(self) -> ttk.Frame:
        return self._inner

    def _toggle(self) -> None:
        if self._open:
            self._inner.pack_forget()
            self._btn.configure(text=f"▶  {self._title}")
        else:
            self._inner.pack(fill="x", expand=True)
            self._btn.configure(text=f"▼  {self._title}")
        self._open = not self._open


# ---------------------------------------------------------------------------
# Main GUI class
# ---------------------------------------------------------------------------

class GalaxyGUI:
    """Top-level GUI application window."""

    def __init__(self, root: tk.Tk) -> None:
        self.root = root
        root.title("Spiral Galaxy Generator")
        root.minsize(1100, 720)

        self._worker: Optional[threading.Thread] = None
        self._queue = RegenerationQueue()

        self._fig, self._surface = make_surface(figsize=(8, 8))
        self._generator = GalaxyGenerator()

        self._build_vars()
        self._build_ui()

        self.root.after(0, self._on_edit_finished)
        self.root.after(TICK_MS, self._tick)

    # ── Variable definitions ──────────────────────────────────────────────

    def _build_vars(self) -> None:
        iv = tk.IntVar
        dv = tk.DoubleVar
        sv = tk.StringVar
        bv = tk.BooleanVar
        d  = GalaxyParams()

        # ── Generation ──────────────────────────────────────────────────
        self.v_count            = iv(value=d.count)
        self.v_radius           = dv(value=d.radius)
        self.v_branches         = iv(value=d.branches)
        self.v_spin             = dv(value=d.spin)
        self.v_randomness       = dv(value=d.randomness)
        self.v_randomness_power = dv(value=d.randomness_power)
        self.v_inside_color     = sv(value=d.inside_color)
        self.v_outside_color    = sv(value=d.outside_color)
        self.v_use_seed         = bv(value=False)
        self.v_seed             = iv(value=7)

        # ── Render only ──────────────────────────────────────────────────
        self.v_size               = dv(value=d.size)
        self.v_rotation_active    = bv(value=d.rotation_active)
        self.v_rotation_speed     = dv(value=d.rotation_speed)
        self.v_rotation_clockwise = bv(value=d.rotation_clockwise)

    # ── UI construction ───────────────────────────────────────────────────

    def _build_ui(self) -> None:
        self._build_action_bar()

        paned = ttk.PanedWindow(self.root, orient="horizontal")
        paned.pack(fill="both", expand=True, padx=6, pady=(6, 0))

        left_outer = ttk.Frame(paned, width=400)
        left_outer.pack_propagate(False)
        paned.add(left_outer, weight=0)

        centre_frame = ttk.Frame(paned)
        paned.add(centre_frame, weight=1)

        self._build_param_panel(left_outer)
        self._build_preview_panel(centre_frame)

    # ── Left parameter panel ──────────────────────────────────────────────

    def _build_param_panel(self, parent: ttk.Frame) -> None:
        """Scrollable left panel with collapsible parameter sections."""
        scroll_canvas = tk.Canvas(parent, highlightthickness=0, borderwidth=0)
        vscroll = ttk.Scrollbar(parent, orient="vertical",
                                command=scroll_canvas.yview)
        scroll_canvas.configure(yscrollcommand=vscroll.set)
        vscroll.pack(side="right", fill="y")
        scroll_canvas.pack(side="left", fill="both", expand=True)

        inner = ttk.Frame(scroll_canvas)
        win_id = scroll_canvas.create_window((0, 0), window=inner, anchor="nw")

        inner.bind("<Configure>",
                   lambda _e: scroll_canvas.configure(
                       scrollregion=scroll_canvas.bbox("all")))
        scroll_canvas.bind("<Configure>",
                           lambda e: scroll_canvas.itemconfigure(win_id, width=e.width))

        LW  = 22
        fin = self._on_edit_finished

        # ── Structure ─────────────────────────────────────────────────
        sec = Section(inner, "Structure")
        sec.pack(fill="x", padx=4, pady=3)
        s = sec.inner
        SliderEntry(s, "Points (count)",     self.v_count,    100_000, 1_000_000, 10_000, fin, label_width=LW).pack(fill="x")
        SliderEntry(s, "Radius",             self.v_radius,   5.0, 20.0, 0.1,   fin, label_width=LW).pack(fill="x")
        SliderEntry(s, "Branches",           self.v_branches, 3, 20, 1,         fin, label_width=LW).pack(fill="x")
        SliderEntry(s, "Spin",               self.v_spin,     -2.0, 2.0, 0.001, fin, label_width=LW).pack(fill="x")

        # ── Scatter ───────────────────────────────────────────────────
        sec = Section(inner, "Scatter")
        sec.pack(fill="x", padx=4, pady=3)
        s = sec.inner
        SliderEntry(s, "Randomness",         self.v_randomness,       0.0, 2.0, 0.001, fin, label_width=LW).pack(fill="x")
        SliderEntry(s, "Randomness power",   self.v_randomness_power, 1.0, 10.0, 0.01, fin, label_width=LW).pack(fill="x")

        # ── Colours ───────────────────────────────────────────────────
        sec = Section(inner, "Colours")
        sec.pack(fill="x", padx=4, pady=3)
        s = sec.inner
        ColorEntry(s, "Inside colour",  self.v_inside_color,  fin, label_width=LW).pack(fill="x")
        ColorEntry(s, "Outside colour", self.v_outside_color, fin, label_width=LW).pack(fill="x")

        # ── Appearance ────────────────────────────────────────────────
        sec = Section(inner, "Appearance")
        sec.pack(fill="x", padx=4, pady=3)
        s = sec.inner
        SliderEntry(s, "Point size", self.v_size, 0.001, 0.1, 0.001, fin, label_width=LW).pack(fill="x")

        # ── Rotation ──────────────────────────────────────────────────
        sec = Section(inner, "Rotation")
        sec.pack(fill="x", padx=4, pady=3)
        s = sec.inner
        SliderEntry(s, "Speed (rad / frame)", self.v_rotation_speed, 0.0001, 0.005, 0.0001, label_width=LW).pack(fill="x")
        ttk.Checkbutton(s, text="Clockwise",
                        variable=self.v_rotation_clockwise).pack(anchor="w", padx=4, pady=2)
        ttk.Checkbutton(s, text="Rotate",
                        variable=self.v_rotation_active).pack(anchor="w", padx=4, pady=2)

        # ── Reproducibility ───────────────────────────────────────────
        sec = Section(inner, "Reproducibility", start_open=False)
        sec.pack(fill="x", padx=4, pady=3)
        s = sec.inner
        row = ttk.Frame(s)
        row.pack(fill="x", pady=1)
        ttk.Checkbutton(row, text="Fixed seed", width=LW, variable=self.v_use_seed,
                        command=fin).pack(side="left", padx=(4, 2))
        seed_box = ttk.Spinbox(row, from_=0, to=99_999, increment=1,
                               textvariable=self.v_seed, width=8, command=fin)
        seed_box.pack(side="left")
        seed_box.bind("<Return>", lambda _e: fin())

    # ── Preview panel (centre) ─────────────────────────────────────────────

    def _build_preview_panel(self, parent: ttk.Frame) -> None:
        canvas = FigureCanvasTkAgg(self._fig, master=parent)
        canvas.draw()
        canvas.get_tk_widget().pack(fill="both", expand=True)

        toolbar_frame = ttk.Frame(parent)
        toolbar_frame.pack(fill="x")
        NavigationToolbar2Tk(canvas, toolbar_frame).update()

        self._attach_scroll_zoom(canvas)
        self._canvas = canvas

    # ── Action bar ────────────────────────────────────────────────────────

    def _build_action_bar(self) -> None:
        bar = ttk.Frame(self.root)
        bar.pack(side="bottom", fill="x", padx=6, pady=(0, 6))

        self.btn_generate = ttk.Button(bar, text="Regenerate",
                                       command=self._on_regenerate, width=12)
        self.btn_generate.pack(side="left", padx=(0, 4))

        ttk.Separator(bar, orient="vertical").pack(side="left", fill="y", padx=8, pady=4)

        self.btn_png = ttk.Button(bar, text="Export PNG…",
                                  command=self._on_export_png, width=13)
        self.btn_png.pack(side="left", padx=4)

        self._status_var = tk.StringVar(value="Ready.")
        ttk.Label(bar, textvariable=self._status_var, anchor="w").pack(
            side="left", padx=12)

        self._progress = ttk.Progressbar(bar, mode="indeterminate", length=110)
        self._progress.pack(side="right", padx=4)

    # ── Helpers ───────────────────────────────────────────────────────────

    def _build_params(self) -> GalaxyParams:
        """Snapshot the live panel state."""
        return GalaxyParams(
            count              = self.v_count.get(),
            size               = self.v_size.get(),
            radius             = self.v_radius.get(),
            branches           = self.v_branches.get(),
            spin               = self.v_spin.get(),
            randomness         = self.v_randomness.get(),
            randomness_power   = self.v_randomness_power.get(),
            inside_color       = self.v_inside_color.get().strip(),
            outside_color      = self.v_outside_color.get().strip(),
            rotation_active    = self.v_rotation_active.get(),
            rotation_speed     = self.v_rotation_speed.get(),
            rotation_clockwise = self.v_rotation_clockwise.get(),
            seed               = self.v_seed.get() if self.v_use_seed.get() else None,
        )

    def _set_busy(self, busy: bool) -> None:
        self.btn_generate.configure(state="disabled" if busy else "normal")
        if busy:
            self._progress.start(10)
        else:
            self._progress.stop()

    def _status(self, msg: str) -> None:
        self._status_var.set(msg)

    # ── Edit handling ─────────────────────────────────────────────────────

    def _on_edit_finished(self) -> None:
        try:
            params = self._build_params()
        except tk.TclError as exc:
            self._status(f"Invalid value: {exc}")
            return
        self._dispatch(self._queue.submit(params), params)

    def _on_regenerate(self) -> None:
        try:
            params = self._build_params()
        except tk.TclError as exc:
            self._status(f"Invalid value: {exc}")
            return
        self._dispatch(self._queue.submit(params, force=True), params)

    def _dispatch(self, action: Optional[str], params: Optional[GalaxyParams]) -> None:
        if action == RegenerationQueue.GENERATE:
            self._start_worker(params)
        elif action == RegenerationQueue.RESTYLE:
            self._surface.set_point_size(params.size)
            self._canvas.draw_idle()
        elif action == RegenerationQueue.QUEUED:
            self._status("Generating… (latest edit queued)")

    # ── Generate action ───────────────────────────────────────────────────

    def _start_worker(self, params: GalaxyParams) -> None:
        self._set_busy(True)
        self._status(f"Generating {params.count:,} points…")
        self._worker = threading.Thread(
            target=self._generate_worker, args=(params,), daemon=True)
        self._worker.start()

    def _generate_worker(self, params: GalaxyParams) -> None:
        try:
            cloud = self._generator.generate(params)
        except InvalidParameter as exc:
            title, msg = "Invalid parameter", str(exc)
        except Exception as exc:
            title, msg = "Generation failed", str(exc)
        else:
            self.root.after(0, lambda: self._swap_in(cloud, params))
            return
        # The previous cloud stays on screen
        self.root.after(0, lambda: (
            self._status(f"Generation failed: {msg}"),
            messagebox.showerror(title, msg),
            self._finish_run(succeeded=False),
        ))

    def _swap_in(self, cloud: PointCloud, params: GalaxyParams) -> None:
        """Main thread: hand the finished cloud to the display surface."""
        self._surface.replace(cloud, params.size)
        self._canvas.draw_idle()
        self._status(f"{len(cloud):,} points on {params.branches} branches.")
        self._finish_run(succeeded=True)

    def _finish_run(self, succeeded: bool) -> None:
        self._worker = None
        self._set_busy(False)
        self._dispatch(*self._queue.finish(succeeded))

    # ── Render loop ───────────────────────────────────────────────────────

    def _tick(self) -> None:
        try:
            params = GalaxyParams(
                rotation_active    = self.v_rotation_active.get(),
                rotation_speed     = self.v_rotation_speed.get(),
                rotation_clockwise = self.v_rotation_clockwise.get(),
            )
        except tk.TclError:
            params = None
        if params is not None and self._surface.current is not None:
            if self._surface.rotate(params):
                self._canvas.draw_idle()
        self.root.after(TICK_MS, self._tick)

    # ── Scroll-wheel zoom ─────────────────────────────────────────────────

    def _attach_scroll_zoom(self, canvas: FigureCanvasTkAgg) -> None:
        """Scroll-wheel zoom about the origin.

        All three axes are scaled by the same factor so the disk keeps its
        proportions.
        """
        FACTOR = 1.2

        def _do_zoom(factor: float) -> None:
            ax = self._surface.ax
            for get, set_ in ((ax.get_xlim3d, ax.set_xlim3d),
                              (ax.get_ylim3d, ax.set_ylim3d),
                              (ax.get_zlim3d, ax.set_zlim3d)):
                lo, hi = get()
                mid  = (lo + hi) / 2.0
                half = (hi - lo) / 2.0 / factor
                set_(mid - half, mid + half)
            canvas.draw_idle()

        w = canvas.get_tk_widget()
        w.bind("<MouseWheel>",
               lambda e: _do_zoom(FACTOR if e.delta > 0 else 1 / FACTOR))
        w.bind("<Button-4>", lambda _e: _do_zoom(FACTOR))
        w.bind("<Button-5>", lambda _e: _do_zoom(1 / FACTOR))

    # ── Export action ─────────────────────────────────────────────────────

    def _on_export_png(self) -> None:
        if self._surface.current is None:
            messagebox.showwarning("No data", "Nothing generated yet.")
            return
        path = filedialog.asksaveasfilename(
            defaultextension=".png",
            filetypes=[("PNG image", "*.png"), ("All files", "*.*")],
            title="Export galaxy image",
        )
        if not path:
            return
        try:
            self._fig.savefig(path, dpi=150, bbox_inches="tight",
                              facecolor=self._fig.get_facecolor())
        except OSError as exc:
            self._status(f"Export failed: {exc}")
            messagebox.showerror("Export failed", str(exc))
            return
        self._status(f"Saved → {path}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    root = tk.Tk()
    GalaxyGUI(root)
    root.mainloop()
    plt.close("all")


if __name__ == "__main__":
    main()
